import enum
import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from leave_ledger.models.leave_event import LeaveEvent
from leave_ledger.models.leave_request import LeaveRequest

logger = logging.getLogger(__name__)


class LeaveEventType(str, enum.Enum):
    CREATED = "leave_request_created"
    APPROVED = "leave_request_approved"
    REJECTED = "leave_request_rejected"
    CANCELED = "leave_request_canceled"


class LeaveEventMessage(BaseModel):
    """What subscribers receive once the transition has committed."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: LeaveEventType
    leave_request_id: int
    employee_id: str
    manager_id: Optional[str] = None
    start_date: date
    end_date: date
    comments: Optional[str] = None
    created_at: Optional[datetime] = None


Subscriber = Callable[[LeaveEventMessage], None]


class NotificationService:
    @staticmethod
    def record_event(
        db: Session,
        event_type: LeaveEventType,
        leave_request: LeaveRequest,
        comments: Optional[str] = None
    ) -> LeaveEvent:
        """
        Writes the event to the outbox inside the current transaction.
        Approve and reject events carry the reviewer's comments.
        """
        event = LeaveEvent(
            event_type=event_type.value,
            leave_request_id=leave_request.id,
            employee_id=leave_request.employee_id,
            manager_id=leave_request.manager_id,
            start_date=leave_request.start_date,
            end_date=leave_request.end_date,
            comments=comments
        )
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def list_events(db: Session, leave_request_id: int) -> List[LeaveEvent]:
        return (
            db.query(LeaveEvent)
            .filter(LeaveEvent.leave_request_id == leave_request_id)
            .order_by(LeaveEvent.id)
            .all()
        )


class NotificationDispatcher:
    """
    Fans committed lifecycle events out to in-process subscribers.
    Delivery (sockets, email) belongs to the subscribers themselves.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, handler: Subscriber) -> None:
        self._subscribers.append(handler)

    def unsubscribe(self, handler: Subscriber) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def dispatch(self, event: LeaveEvent) -> None:
        message = LeaveEventMessage.model_validate(event)
        for handler in list(self._subscribers):
            try:
                handler(message)
            except Exception as e:
                # Don't fail the request if notification fails
                logger.warning(
                    f"Notification subscriber failed for {message.event_type.value}: {e}",
                    exc_info=True
                )
