from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from leave_ledger.database import Base


class LeaveEvent(Base):
    """Outbox of lifecycle events for the notification dispatcher."""
    __tablename__ = "leave_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    manager_id = Column(String, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    comments = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
