"""
Service providers for FastAPI endpoints.

Each request gets services bound to its own database session; the
notification dispatcher is the one owned by the running application.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from leave_ledger.database import get_db
from leave_ledger.routers.auth_deps import (
    get_current_actor,
    require_role,
    require_manager,
    require_admin,
)
from leave_ledger.schemas.auth import CurrentActor
from leave_ledger.services.leave_balance_service import LeaveBalanceService
from leave_ledger.services.leave_request_service import LeaveRequestService
from leave_ledger.services.leave_type_service import LeaveTypeService
from leave_ledger.services.notification import NotificationDispatcher


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.notification_dispatcher


def get_leave_type_service(db: Session = Depends(get_db)) -> LeaveTypeService:
    return LeaveTypeService(db)


def get_leave_balance_service(db: Session = Depends(get_db)) -> LeaveBalanceService:
    return LeaveBalanceService(db)


def get_leave_request_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
) -> LeaveRequestService:
    return LeaveRequestService(db, dispatcher=dispatcher)


__all__ = [
    "get_current_actor",
    "require_role",
    "require_manager",
    "require_admin",
    "get_dispatcher",
    "get_leave_type_service",
    "get_leave_balance_service",
    "get_leave_request_service",
    "CurrentActor",
]
