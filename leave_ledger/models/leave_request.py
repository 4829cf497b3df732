from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_ledger.database import Base
import enum


class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not LeaveStatus.PENDING


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, nullable=False, index=True)
    manager_id = Column(String, nullable=True, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    number_of_days = Column(Integer, nullable=False)
    reason = Column(String(500), nullable=True)
    status = Column(String, default=LeaveStatus.PENDING.value, nullable=False, index=True)  # Stored as the enum value
    approved_by_id = Column(String, nullable=True)  # set on approve and reject
    comments = Column(String(500), nullable=True)
    cancelled_by_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    leave_type = relationship("LeaveType")

    __table_args__ = (
        Index("idx_leave_requests_employee_status", "employee_id", "status"),
    )

    @property
    def year(self) -> int:
        """Ledger year the request is charged to."""
        return self.start_date.year

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.employee_id} {self.status}>"
