from typing import List, Optional

from fastapi import APIRouter, Depends, status

from leave_ledger.core.exceptions import AccessDeniedError
from leave_ledger.core.schemas import ApiResponse
from leave_ledger.dependencies import (
    get_current_actor,
    get_leave_request_service,
    require_admin,
    require_manager,
)
from leave_ledger.models.leave_request import LeaveStatus
from leave_ledger.schemas.auth import CurrentActor
from leave_ledger.schemas.leave import (
    LeaveApproveRequest,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveRequestUpdate,
)
from leave_ledger.services.leave_request_service import LeaveRequestService

router = APIRouter(prefix="/leave-requests", tags=["leave-requests"])


def _one(leave_request) -> ApiResponse[LeaveRequestResponse]:
    return ApiResponse.ok(LeaveRequestResponse.model_validate(leave_request))


def _many(leave_requests) -> ApiResponse[List[LeaveRequestResponse]]:
    items = [LeaveRequestResponse.model_validate(lr) for lr in leave_requests]
    return ApiResponse.ok(items, metadata={"total": len(items)})


@router.post("", response_model=ApiResponse[LeaveRequestResponse], status_code=status.HTTP_201_CREATED)
def create_leave_request(
    payload: LeaveRequestCreate,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    """Submit a leave request for the calling employee."""
    leave_request = service.create_leave_request(
        employee_id=actor.employee_id,
        leave_type_id=payload.leave_type_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        manager_id=actor.manager_id
    )
    return _one(leave_request)


@router.get("/my-leaves", response_model=ApiResponse[List[LeaveRequestResponse]])
def get_my_leaves(
    status: Optional[LeaveStatus] = None,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    return _many(service.list_leave_requests(employee_id=actor.employee_id, status=status))


@router.get("/team-leaves", response_model=ApiResponse[List[LeaveRequestResponse]])
def get_team_leaves(
    status: Optional[LeaveStatus] = None,
    actor: CurrentActor = Depends(require_manager()),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    """Requests filed by employees who report to the caller."""
    return _many(service.list_leave_requests(manager_id=actor.employee_id, status=status))


@router.get("", response_model=ApiResponse[List[LeaveRequestResponse]])
def list_all_leaves(
    status: Optional[LeaveStatus] = None,
    employee_id: Optional[str] = None,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    return _many(service.list_leave_requests(employee_id=employee_id, status=status))


@router.get("/{request_id}", response_model=ApiResponse[LeaveRequestResponse])
def get_leave_request(
    request_id: int,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    leave_request = service.get_leave_request(request_id)
    if not (
        actor.is_admin
        or leave_request.employee_id == actor.employee_id
        or leave_request.manager_id == actor.employee_id
    ):
        raise AccessDeniedError("You do not have access to this leave request")
    return _one(leave_request)


@router.put("/{request_id}", response_model=ApiResponse[LeaveRequestResponse])
def update_leave_request(
    request_id: int,
    payload: LeaveRequestUpdate,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    leave_request = service.update_leave_request(
        request_id,
        actor_id=actor.employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        actor_role=actor.role
    )
    return _one(leave_request)


@router.post("/{request_id}/approve", response_model=ApiResponse[LeaveRequestResponse])
def approve_leave_request(
    request_id: int,
    payload: Optional[LeaveApproveRequest] = None,
    actor: CurrentActor = Depends(require_manager()),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    leave_request = service.approve_leave_request(
        request_id,
        approver_id=actor.employee_id,
        comments=payload.comments if payload else None,
        approver_role=actor.role
    )
    return _one(leave_request)


@router.post("/{request_id}/reject", response_model=ApiResponse[LeaveRequestResponse])
def reject_leave_request(
    request_id: int,
    payload: LeaveRejectRequest,
    actor: CurrentActor = Depends(require_manager()),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    leave_request = service.reject_leave_request(
        request_id,
        approver_id=actor.employee_id,
        comments=payload.comments,
        approver_role=actor.role
    )
    return _one(leave_request)


@router.post("/{request_id}/cancel", response_model=ApiResponse[LeaveRequestResponse])
def cancel_leave_request(
    request_id: int,
    payload: Optional[LeaveCancelRequest] = None,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveRequestService = Depends(get_leave_request_service)
):
    leave_request = service.cancel_leave_request(
        request_id,
        actor_id=actor.employee_id,
        actor_role=actor.role,
        reason=payload.reason if payload else None
    )
    return _one(leave_request)
