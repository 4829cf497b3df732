import pytest
from datetime import date

from leave_ledger.core.exceptions import (
    AccessDeniedError,
    InsufficientBalance,
    InvalidTransition,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from leave_ledger.core.security import UserRole
from leave_ledger.models.audit_log import AuditLog
from leave_ledger.models.leave_request import LeaveRequest, LeaveStatus
from leave_ledger.services.leave_request_service import LeaveRequestService, calculate_number_of_days
from leave_ledger.services.notification import LeaveEventType, NotificationService

EMPLOYEE = "emp-1"
MANAGER = "mgr-1"
TODAY = date(2024, 5, 1)


def _submit(lifecycle, leave_type, start=date(2024, 6, 1), end=date(2024, 6, 3), **kwargs):
    kwargs.setdefault("manager_id", MANAGER)
    return lifecycle.create_leave_request(EMPLOYEE, leave_type.id, start, end, **kwargs)


def _balance(lifecycle, leave_type, year=2024):
    return lifecycle.ledger.get_balance(EMPLOYEE, leave_type.id, year)


@pytest.mark.parametrize("start, end, expected", [
    (date(2024, 6, 1), date(2024, 6, 1), 1),
    (date(2024, 6, 1), date(2024, 6, 3), 3),
    (date(2024, 2, 28), date(2024, 3, 1), 3),
    (date(2024, 12, 31), date(2025, 1, 1), 2),
])
def test_calculate_number_of_days_is_inclusive(start, end, expected):
    assert calculate_number_of_days(start, end) == expected


def test_create_within_consecutive_limit(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    assert leave_request.number_of_days == 3
    assert leave_request.status == LeaveStatus.PENDING.value
    assert leave_request.manager_id == MANAGER
    assert _balance(lifecycle, vacation).pending == 3


def test_create_over_consecutive_limit(db_session, lifecycle, vacation):
    with pytest.raises(PolicyViolation):
        _submit(lifecycle, vacation, end=date(2024, 6, 10))

    assert db_session.query(LeaveRequest).count() == 0
    assert _balance(lifecycle, vacation) is None


def test_create_rejects_bad_dates(lifecycle, vacation):
    with pytest.raises(ValidationError):
        _submit(lifecycle, vacation, start=date(2024, 6, 5), end=date(2024, 6, 1))
    with pytest.raises(ValidationError):
        _submit(lifecycle, vacation, start=date(2024, 4, 30), end=date(2024, 5, 2))


def test_create_may_start_today(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation, start=TODAY, end=TODAY)
    assert leave_request.number_of_days == 1


def test_create_with_unknown_or_inactive_type(lifecycle, vacation):
    with pytest.raises(NotFoundError):
        lifecycle.create_leave_request(EMPLOYEE, 9999, date(2024, 6, 1), date(2024, 6, 2))

    lifecycle.leave_types.deactivate_leave_type(vacation.id)
    with pytest.raises(ValidationError):
        _submit(lifecycle, vacation)


def test_documentation_required(lifecycle, make_leave_type):
    medical = make_leave_type(name="Medical", requires_documentation=True)

    with pytest.raises(ValidationError):
        _submit(lifecycle, medical)
    with pytest.raises(ValidationError):
        _submit(lifecycle, medical, reason="   ")

    leave_request = _submit(lifecycle, medical, reason="Doctor's note attached")
    assert leave_request.reason == "Doctor's note attached"


def test_create_with_insufficient_balance(db_session, lifecycle, make_leave_type):
    scarce = make_leave_type(name="Scarce", accrual_rate=0.25)  # 3 days a year

    with pytest.raises(InsufficientBalance):
        _submit(lifecycle, scarce, end=date(2024, 6, 4))

    assert db_session.query(LeaveRequest).count() == 0
    assert lifecycle.ledger.get_available(EMPLOYEE, scarce.id, 2024) == 3


def test_yearly_cap_counts_used_and_pending(lifecycle, make_leave_type):
    capped = make_leave_type(name="Study", accrual_rate=2, max_days=5)
    lifecycle.ledger.adjust(EMPLOYEE, capped.id, 10, reason="Extra study days", year=2024)
    first = _submit(lifecycle, capped)
    lifecycle.approve_leave_request(first.id, MANAGER)

    with pytest.raises(PolicyViolation):
        _submit(lifecycle, capped, start=date(2024, 7, 1), end=date(2024, 7, 3))

    second = _submit(lifecycle, capped, start=date(2024, 7, 1), end=date(2024, 7, 2))
    assert second.number_of_days == 2


def test_approve_commits_reserved_days(db_session, lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    approved = lifecycle.approve_leave_request(leave_request.id, MANAGER, comments="Enjoy", approver_role=UserRole.MANAGER)

    assert approved.status == LeaveStatus.APPROVED.value
    assert approved.approved_by_id == MANAGER
    assert approved.comments == "Enjoy"
    balance = _balance(lifecycle, vacation)
    assert balance.pending == 0
    assert balance.used == 3
    assert balance.available == 12
    assert db_session.query(AuditLog).filter(AuditLog.action == "approve_leave_request").count() == 1


def test_second_approve_is_invalid_transition(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)
    lifecycle.approve_leave_request(leave_request.id, MANAGER)

    for _ in range(3):
        with pytest.raises(InvalidTransition):
            lifecycle.approve_leave_request(leave_request.id, MANAGER)

    balance = _balance(lifecycle, vacation)
    assert balance.used == 3
    assert balance.pending == 0


def test_reject_requires_comments(db_session, lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    with pytest.raises(ValidationError):
        lifecycle.reject_leave_request(leave_request.id, MANAGER, comments="")
    assert lifecycle.get_leave_request(leave_request.id).status == LeaveStatus.PENDING.value
    assert _balance(lifecycle, vacation).pending == 3

    rejected = lifecycle.reject_leave_request(leave_request.id, MANAGER, comments="not eligible")

    assert rejected.status == LeaveStatus.REJECTED.value
    assert rejected.comments == "not eligible"
    assert _balance(lifecycle, vacation).pending == 0
    assert _balance(lifecycle, vacation).used == 0


def test_terminal_states_refuse_transitions(lifecycle, vacation):
    rejected = _submit(lifecycle, vacation)
    lifecycle.reject_leave_request(rejected.id, MANAGER, comments="Busy period")
    cancelled = _submit(lifecycle, vacation, start=date(2024, 7, 1), end=date(2024, 7, 2))
    lifecycle.cancel_leave_request(cancelled.id, EMPLOYEE)

    for leave_request in (rejected, cancelled):
        with pytest.raises(InvalidTransition):
            lifecycle.approve_leave_request(leave_request.id, MANAGER)
        with pytest.raises(InvalidTransition):
            lifecycle.reject_leave_request(leave_request.id, MANAGER, comments="Again")
        with pytest.raises(InvalidTransition):
            lifecycle.cancel_leave_request(leave_request.id, EMPLOYEE)

    balance = _balance(lifecycle, vacation)
    assert balance.pending == 0
    assert balance.used == 0


def test_missing_request_is_not_found(lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.approve_leave_request(42, MANAGER)
    with pytest.raises(NotFoundError):
        lifecycle.get_leave_request(42)


def test_cancel_pending_releases_reservation(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    cancelled = lifecycle.cancel_leave_request(leave_request.id, EMPLOYEE, reason="Plans changed")

    assert cancelled.status == LeaveStatus.CANCELLED.value
    assert cancelled.cancelled_by_id == EMPLOYEE
    assert _balance(lifecycle, vacation).pending == 0


def test_cancel_by_someone_else(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    with pytest.raises(AccessDeniedError):
        lifecycle.cancel_leave_request(leave_request.id, "emp-2", actor_role=UserRole.EMPLOYEE)
    with pytest.raises(AccessDeniedError):
        lifecycle.cancel_leave_request(leave_request.id, MANAGER, actor_role=UserRole.MANAGER)

    cancelled = lifecycle.cancel_leave_request(leave_request.id, "hr-1", actor_role=UserRole.HR)
    assert cancelled.cancelled_by_id == "hr-1"


def test_cancel_approved_disabled_by_default(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)
    lifecycle.approve_leave_request(leave_request.id, MANAGER)

    with pytest.raises(InvalidTransition):
        lifecycle.cancel_leave_request(leave_request.id, EMPLOYEE)

    assert lifecycle.get_leave_request(leave_request.id).status == LeaveStatus.APPROVED.value
    assert _balance(lifecycle, vacation).used == 3


def test_cancel_approved_when_enabled_returns_days(db_session, dispatcher, vacation):
    lifecycle = LeaveRequestService(db_session, dispatcher=dispatcher, today=lambda: TODAY, allow_cancel_approved=True)
    leave_request = _submit(lifecycle, vacation)
    lifecycle.approve_leave_request(leave_request.id, MANAGER)

    cancelled = lifecycle.cancel_leave_request(leave_request.id, EMPLOYEE)

    assert cancelled.status == LeaveStatus.CANCELLED.value
    balance = _balance(lifecycle, vacation)
    assert balance.used == 0
    assert balance.pending == 0
    assert balance.available == 15


def test_update_swaps_reservation(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    updated = lifecycle.update_leave_request(
        leave_request.id, EMPLOYEE, end_date=date(2024, 6, 5), reason="Longer trip"
    )

    assert updated.number_of_days == 5
    assert updated.reason == "Longer trip"
    assert _balance(lifecycle, vacation).pending == 5


def test_update_keeps_reservation_when_invalid(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)

    with pytest.raises(PolicyViolation):
        lifecycle.update_leave_request(leave_request.id, EMPLOYEE, end_date=date(2024, 6, 10))

    assert lifecycle.get_leave_request(leave_request.id).number_of_days == 3
    assert _balance(lifecycle, vacation).pending == 3


def test_update_only_while_pending(lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)
    lifecycle.approve_leave_request(leave_request.id, MANAGER)

    with pytest.raises(InvalidTransition):
        lifecycle.update_leave_request(leave_request.id, EMPLOYEE, end_date=date(2024, 6, 2))
    with pytest.raises(AccessDeniedError):
        lifecycle.update_leave_request(leave_request.id, "emp-2", end_date=date(2024, 6, 2))


def test_transitions_record_events(db_session, lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)
    lifecycle.approve_leave_request(leave_request.id, MANAGER, comments="Have fun")

    events = NotificationService.list_events(db_session, leave_request.id)

    assert [e.event_type for e in events] == [LeaveEventType.CREATED.value, LeaveEventType.APPROVED.value]
    assert events[1].comments == "Have fun"
    assert events[1].employee_id == EMPLOYEE
    assert events[1].manager_id == MANAGER
    assert events[1].start_date == date(2024, 6, 1)


def test_failed_transition_records_no_event(db_session, lifecycle, vacation):
    leave_request = _submit(lifecycle, vacation)
    lifecycle.reject_leave_request(leave_request.id, MANAGER, comments="No cover")

    with pytest.raises(InvalidTransition):
        lifecycle.approve_leave_request(leave_request.id, MANAGER)

    events = NotificationService.list_events(db_session, leave_request.id)
    assert [e.event_type for e in events] == [LeaveEventType.CREATED.value, LeaveEventType.REJECTED.value]


def test_dispatcher_delivers_after_commit(lifecycle, dispatcher, vacation):
    received = []
    dispatcher.subscribe(received.append)

    leave_request = _submit(lifecycle, vacation)
    lifecycle.cancel_leave_request(leave_request.id, EMPLOYEE, reason="Sick child")

    assert [m.event_type for m in received] == [LeaveEventType.CREATED, LeaveEventType.CANCELED]
    assert received[1].leave_request_id == leave_request.id
    assert received[1].comments == "Sick child"


def test_failing_subscriber_does_not_break_transition(lifecycle, dispatcher, vacation):
    def broken(message):
        raise RuntimeError("socket closed")

    received = []
    dispatcher.subscribe(broken)
    dispatcher.subscribe(received.append)

    leave_request = _submit(lifecycle, vacation)

    assert leave_request.status == LeaveStatus.PENDING.value
    assert len(received) == 1


def test_list_leave_requests_filters(lifecycle, vacation):
    first = _submit(lifecycle, vacation)
    _submit(lifecycle, vacation, start=date(2024, 7, 1), end=date(2024, 7, 1))
    lifecycle.create_leave_request("emp-2", vacation.id, date(2024, 6, 1), date(2024, 6, 1), manager_id="mgr-2")
    lifecycle.approve_leave_request(first.id, MANAGER)

    assert len(lifecycle.list_leave_requests(employee_id=EMPLOYEE)) == 2
    assert len(lifecycle.list_leave_requests(manager_id=MANAGER)) == 2
    assert len(lifecycle.list_leave_requests(manager_id="mgr-2")) == 1
    approved = lifecycle.list_leave_requests(employee_id=EMPLOYEE, status=LeaveStatus.APPROVED)
    assert [lr.id for lr in approved] == [first.id]
    assert len(lifecycle.list_leave_requests(status="PENDING")) == 2


def test_approver_cannot_act_on_own_request(lifecycle, vacation):
    leave_request = lifecycle.create_leave_request(
        MANAGER, vacation.id, date(2024, 6, 1), date(2024, 6, 3), manager_id="director-1"
    )

    with pytest.raises(AccessDeniedError):
        lifecycle.approve_leave_request(leave_request.id, MANAGER, approver_role=UserRole.MANAGER)
    with pytest.raises(AccessDeniedError):
        lifecycle.reject_leave_request(leave_request.id, MANAGER, comments="Self", approver_role=UserRole.HR)

    assert lifecycle.get_leave_request(leave_request.id).status == LeaveStatus.PENDING.value
    balance = lifecycle.ledger.get_balance(MANAGER, vacation.id, 2024)
    assert balance.pending == 3
    assert balance.used == 0

    approved = lifecycle.approve_leave_request(leave_request.id, "director-1", approver_role=UserRole.MANAGER)
    assert approved.status == LeaveStatus.APPROVED.value


def test_edit_after_start_date_has_passed(db_session, dispatcher, vacation):
    clock = {"today": TODAY}
    lifecycle = LeaveRequestService(db_session, dispatcher=dispatcher, today=lambda: clock["today"])
    leave_request = _submit(lifecycle, vacation)
    clock["today"] = date(2024, 6, 2)

    updated = lifecycle.update_leave_request(leave_request.id, EMPLOYEE, reason="typo fix")
    assert updated.reason == "typo fix"
    assert updated.start_date == date(2024, 6, 1)

    updated = lifecycle.update_leave_request(leave_request.id, EMPLOYEE, end_date=date(2024, 6, 4))
    assert updated.number_of_days == 4

    updated = lifecycle.update_leave_request(leave_request.id, EMPLOYEE, start_date=date(2024, 6, 1), reason="same start")
    assert updated.reason == "same start"

    # Moving the start date is checked like a new submission
    with pytest.raises(ValidationError):
        lifecycle.update_leave_request(leave_request.id, EMPLOYEE, start_date=date(2024, 5, 31))
    assert _balance(lifecycle, vacation).pending == 4


@pytest.mark.parametrize("status, terminal", [
    (LeaveStatus.PENDING, False),
    (LeaveStatus.APPROVED, True),
    (LeaveStatus.REJECTED, True),
    (LeaveStatus.CANCELLED, True),
])
def test_terminal_statuses(status, terminal):
    assert status.is_terminal is terminal
