from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_ledger.database import Base


class LeaveBalance(Base):
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), index=True, nullable=False)
    year = Column(Integer, nullable=False)
    total = Column(Float, default=0.0, nullable=False)
    used = Column(Float, default=0.0, nullable=False)  # committed by approved requests
    pending = Column(Float, default=0.0, nullable=False)  # reserved by pending requests
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    leave_type = relationship("LeaveType")

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balance_key"),
    )

    @property
    def available(self) -> float:
        return max(0.0, (self.total or 0.0) - (self.used or 0.0) - (self.pending or 0.0))

    def snapshot(self) -> dict:
        return {
            "total": self.total,
            "used": self.used,
            "pending": self.pending,
            "available": self.available,
        }
