"""
Leave Request Lifecycle

State machine for a single leave request:

    PENDING --approve--> APPROVED
    PENDING --reject---> REJECTED
    PENDING --cancel---> CANCELLED
    APPROVED --cancel--> CANCELLED   (only with ALLOW_CANCEL_APPROVED)

APPROVED, REJECTED and CANCELLED are terminal for approve/reject. Every
transition locks the request row, moves days through the balance ledger,
records an outbox event and an audit entry, all in one transaction. Events
are handed to the notification dispatcher only after that transaction has
committed.
"""
from datetime import date
from typing import Callable, List, Optional, Union

from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import (
    AccessDeniedError,
    InvalidTransition,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from leave_ledger.core.security import ADMIN_ROLES, UserRole
from leave_ledger.database import transaction
from leave_ledger.models.leave_event import LeaveEvent
from leave_ledger.models.leave_request import LeaveRequest, LeaveStatus
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.services.audit import AuditService
from leave_ledger.services.base import BaseService
from leave_ledger.services.leave_balance_service import LeaveBalanceService
from leave_ledger.services.leave_type_service import LeaveTypeService
from leave_ledger.services.notification import (
    LeaveEventType,
    NotificationDispatcher,
    NotificationService,
)


def calculate_number_of_days(start_date: date, end_date: date) -> int:
    """Calendar-inclusive day count: a single-day leave is 1 day."""
    return (end_date - start_date).days + 1


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


class LeaveRequestService(BaseService):

    def __init__(
        self,
        db,
        dispatcher: Optional[NotificationDispatcher] = None,
        today: Callable[[], date] = date.today,
        allow_cancel_approved: Optional[bool] = None
    ):
        super().__init__(db)
        self.dispatcher = dispatcher
        self.today = today
        self.allow_cancel_approved = (
            settings.allow_cancel_approved if allow_cancel_approved is None else allow_cancel_approved
        )
        self.ledger = LeaveBalanceService(db, today=today)
        self.leave_types = LeaveTypeService(db)

    # --- Queries ---

    def get_leave_request(self, request_id: int) -> LeaveRequest:
        leave_request = self.db.get(LeaveRequest, request_id)
        if leave_request is None:
            raise NotFoundError(f"Leave request {request_id} not found")
        return leave_request

    def list_leave_requests(
        self,
        employee_id: Optional[str] = None,
        manager_id: Optional[str] = None,
        status: Optional[Union[LeaveStatus, str]] = None
    ) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest)
        if employee_id:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if manager_id:
            query = query.filter(LeaveRequest.manager_id == manager_id)
        if status:
            query = query.filter(LeaveRequest.status == LeaveStatus(status).value)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

    # --- Validation ---

    def _validate_submission(
        self,
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        reason: Optional[str],
        check_past_start: bool = True
    ) -> int:
        """
        Checks shared by create and update. Returns the inclusive day count.

        The no-past-start rule applies at submission and when an edit moves
        the start date, never to a start date that is left unchanged.
        """
        if not leave_type.active:
            raise ValidationError(f"Leave type '{leave_type.name}' is not active")
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        if start_date > end_date:
            raise ValidationError("End date must be on or after start date")
        if check_past_start and start_date < self.today():
            raise ValidationError("Leave cannot start in the past")

        days = calculate_number_of_days(start_date, end_date)

        if leave_type.requires_documentation and not _clean(reason):
            raise ValidationError(
                f"A reason or supporting document is required for {leave_type.name} leave"
            )
        if leave_type.max_consecutive_days is not None and days > leave_type.max_consecutive_days:
            raise PolicyViolation(
                f"{leave_type.name} leave is limited to {leave_type.max_consecutive_days} consecutive days; "
                f"requested {days}",
                details={"requested": days, "max_consecutive_days": leave_type.max_consecutive_days}
            )
        return days

    def _check_yearly_cap(self, employee_id: str, leave_type: LeaveType, year: int, days: int):
        if leave_type.max_days is None:
            return
        balance = self.ledger.get_or_create_balance(employee_id, leave_type.id, year)
        booked = balance.used + balance.pending
        if booked + days > leave_type.max_days:
            raise PolicyViolation(
                f"{leave_type.name} leave is capped at {leave_type.max_days} days per year; "
                f"{booked:g} already booked for {year}",
                details={"requested": days, "booked": booked, "max_days": leave_type.max_days}
            )

    # --- Helpers ---

    def _lock_request(self, request_id: int) -> LeaveRequest:
        leave_request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if leave_request is None:
            raise NotFoundError(f"Leave request {request_id} not found")
        return leave_request

    @staticmethod
    def _ensure_pending(leave_request: LeaveRequest, action: str):
        if LeaveStatus(leave_request.status).is_terminal:
            raise InvalidTransition(
                f"Leave request {leave_request.id} is already {leave_request.status.lower()}. "
                f"Only pending requests can be {action}.",
                details={"status": leave_request.status}
            )

    @staticmethod
    def _ensure_owner_or_admin(leave_request: LeaveRequest, actor_id: str, actor_role, action: str):
        if leave_request.employee_id == actor_id:
            return
        if actor_role is not None and UserRole(actor_role) in ADMIN_ROLES:
            return
        raise AccessDeniedError(f"Only the requesting employee or an administrator can {action} this leave request")

    @staticmethod
    def _ensure_not_own(leave_request: LeaveRequest, approver_id: str, action: str):
        if leave_request.employee_id == approver_id:
            raise AccessDeniedError(f"You cannot {action} your own leave request")

    def _audit(self, action: str, leave_request: LeaveRequest, actor_id: str, actor_role, before: dict, **details):
        AuditService.log(
            self.db,
            action=action,
            entity_type="leave_request",
            entity_id=leave_request.id,
            user_id=actor_id,
            user_role=actor_role,
            details={
                "employee_id": leave_request.employee_id,
                "leave_type_id": leave_request.leave_type_id,
                "number_of_days": leave_request.number_of_days,
                **details
            },
            before_state=before,
            after_state={"status": leave_request.status}
        )

    def _dispatch(self, event: LeaveEvent):
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)

    # --- Transitions ---

    def create_leave_request(
        self,
        employee_id: str,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        manager_id: Optional[str] = None
    ) -> LeaveRequest:
        if not employee_id:
            raise ValidationError("employee_id is required")
        leave_type = self.leave_types.get_leave_type_by_id(leave_type_id)
        days = self._validate_submission(leave_type, start_date, end_date, reason)
        year = start_date.year

        with transaction(self.db):
            self._check_yearly_cap(employee_id, leave_type, year, days)
            self.ledger.reserve(employee_id, leave_type.id, year, days)

            leave_request = LeaveRequest(
                employee_id=employee_id,
                manager_id=manager_id,
                leave_type_id=leave_type.id,
                start_date=start_date,
                end_date=end_date,
                number_of_days=days,
                reason=_clean(reason),
                status=LeaveStatus.PENDING.value
            )
            self.db.add(leave_request)
            self.db.flush()

            self._audit("create_leave_request", leave_request, employee_id, None, before=None)
            event = NotificationService.record_event(self.db, LeaveEventType.CREATED, leave_request)

        self.log_info(
            f"Leave request {leave_request.id} created for employee {employee_id}",
            number_of_days=days
        )
        self._dispatch(event)
        return leave_request

    def update_leave_request(
        self,
        request_id: int,
        actor_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        reason: Optional[str] = None,
        actor_role: Optional[UserRole] = None
    ) -> LeaveRequest:
        """Edit a pending request; the old reservation is swapped for the new one."""
        with transaction(self.db):
            leave_request = self._lock_request(request_id)
            self._ensure_owner_or_admin(leave_request, actor_id, actor_role, "edit")
            self._ensure_pending(leave_request, "edited")

            leave_type = self.leave_types.get_leave_type_by_id(leave_request.leave_type_id)
            new_start = start_date or leave_request.start_date
            new_end = end_date or leave_request.end_date
            new_reason = reason if reason is not None else leave_request.reason
            days = self._validate_submission(
                leave_type, new_start, new_end, new_reason, check_past_start=new_start != leave_request.start_date
            )

            before = {
                "start_date": leave_request.start_date,
                "end_date": leave_request.end_date,
                "number_of_days": leave_request.number_of_days,
            }
            self.ledger.release(
                leave_request.employee_id, leave_request.leave_type_id, leave_request.year, leave_request.number_of_days
            )
            self._check_yearly_cap(leave_request.employee_id, leave_type, new_start.year, days)
            self.ledger.reserve(leave_request.employee_id, leave_request.leave_type_id, new_start.year, days)

            leave_request.start_date = new_start
            leave_request.end_date = new_end
            leave_request.number_of_days = days
            leave_request.reason = _clean(new_reason)
            self.db.flush()

            self._audit(
                "update_leave_request", leave_request, actor_id, actor_role, before=before,
                start_date=new_start, end_date=new_end
            )

        self.log_info(f"Leave request {request_id} updated", number_of_days=days)
        return leave_request

    def approve_leave_request(
        self,
        request_id: int,
        approver_id: str,
        comments: Optional[str] = None,
        approver_role: Optional[UserRole] = None
    ) -> LeaveRequest:
        with transaction(self.db):
            leave_request = self._lock_request(request_id)
            self._ensure_not_own(leave_request, approver_id, "approve")
            self._ensure_pending(leave_request, "approved")
            before = {"status": leave_request.status}

            self.ledger.commit(
                leave_request.employee_id, leave_request.leave_type_id, leave_request.year, leave_request.number_of_days
            )
            leave_request.status = LeaveStatus.APPROVED.value
            leave_request.approved_by_id = approver_id
            leave_request.comments = _clean(comments)
            self.db.flush()

            self._audit("approve_leave_request", leave_request, approver_id, approver_role, before, comments=comments)
            event = NotificationService.record_event(
                self.db, LeaveEventType.APPROVED, leave_request, comments=leave_request.comments
            )

        self.log_info(f"Leave request {request_id} approved by {approver_id}")
        self._dispatch(event)
        return leave_request

    def reject_leave_request(
        self,
        request_id: int,
        approver_id: str,
        comments: str,
        approver_role: Optional[UserRole] = None
    ) -> LeaveRequest:
        comments = _clean(comments)
        if not comments:
            raise ValidationError("Comments are required when rejecting a leave request")

        with transaction(self.db):
            leave_request = self._lock_request(request_id)
            self._ensure_not_own(leave_request, approver_id, "reject")
            self._ensure_pending(leave_request, "rejected")
            before = {"status": leave_request.status}

            self.ledger.release(
                leave_request.employee_id, leave_request.leave_type_id, leave_request.year, leave_request.number_of_days
            )
            leave_request.status = LeaveStatus.REJECTED.value
            leave_request.approved_by_id = approver_id
            leave_request.comments = comments
            self.db.flush()

            self._audit("reject_leave_request", leave_request, approver_id, approver_role, before, comments=comments)
            event = NotificationService.record_event(
                self.db, LeaveEventType.REJECTED, leave_request, comments=comments
            )

        self.log_info(f"Leave request {request_id} rejected by {approver_id}")
        self._dispatch(event)
        return leave_request

    def cancel_leave_request(
        self,
        request_id: int,
        actor_id: str,
        actor_role: Optional[UserRole] = None,
        reason: Optional[str] = None
    ) -> LeaveRequest:
        with transaction(self.db):
            leave_request = self._lock_request(request_id)
            self._ensure_owner_or_admin(leave_request, actor_id, actor_role, "cancel")
            before = {"status": leave_request.status}
            args = (
                leave_request.employee_id, leave_request.leave_type_id, leave_request.year, leave_request.number_of_days
            )

            if leave_request.status == LeaveStatus.PENDING.value:
                self.ledger.release(*args)
            elif leave_request.status == LeaveStatus.APPROVED.value and self.allow_cancel_approved:
                self.ledger.uncommit(*args)
            elif leave_request.status == LeaveStatus.APPROVED.value:
                raise InvalidTransition(
                    f"Leave request {leave_request.id} is already approved and "
                    f"cancelling approved leave is disabled",
                    details={"status": leave_request.status}
                )
            else:
                self._ensure_pending(leave_request, "cancelled")

            leave_request.status = LeaveStatus.CANCELLED.value
            leave_request.cancelled_by_id = actor_id
            self.db.flush()

            self._audit(
                "cancel_leave_request", leave_request, actor_id, actor_role, before, reason=_clean(reason)
            )
            event = NotificationService.record_event(
                self.db, LeaveEventType.CANCELED, leave_request, comments=_clean(reason)
            )

        self.log_info(f"Leave request {request_id} cancelled by {actor_id}", previous_status=before["status"])
        self._dispatch(event)
        return leave_request
