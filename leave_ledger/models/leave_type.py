from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime
from sqlalchemy.sql import func
from leave_ledger.database import Base


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(String(200), nullable=False)
    accrual_rate = Column(Float, nullable=False, default=0.0)  # days credited per month
    requires_documentation = Column(Boolean, default=False, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)
    max_days = Column(Integer, nullable=True)  # per-year cap, NULL = unlimited
    max_consecutive_days = Column(Integer, nullable=True)  # NULL = unlimited
    active = Column(Boolean, default=True, nullable=False, index=True)
    color = Column(String(7), nullable=True)  # display only
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def annual_entitlement(self) -> float:
        """Days granted for a full year: twelve months of accrual, capped by max_days."""
        entitlement = (self.accrual_rate or 0.0) * 12
        if self.max_days is not None:
            entitlement = min(entitlement, float(self.max_days))
        return entitlement

    def __repr__(self):
        return f"<LeaveType {self.name} (active={self.active})>"
