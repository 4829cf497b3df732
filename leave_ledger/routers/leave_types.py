from typing import List

from fastapi import APIRouter, Depends, status

from leave_ledger.core.exceptions import AccessDeniedError
from leave_ledger.core.schemas import ApiResponse
from leave_ledger.dependencies import (
    get_current_actor,
    get_leave_type_service,
    require_admin,
)
from leave_ledger.schemas.auth import CurrentActor
from leave_ledger.schemas.leave import LeaveTypeCreate, LeaveTypeResponse, LeaveTypeUpdate
from leave_ledger.services.leave_type_service import LeaveTypeService

router = APIRouter(prefix="/leave-types", tags=["leave-types"])


@router.get("", response_model=ApiResponse[List[LeaveTypeResponse]])
def list_leave_types(
    include_inactive: bool = False,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    """Active leave types; administrators may ask for retired ones too."""
    if include_inactive and not actor.is_admin:
        raise AccessDeniedError("Only administrators can list inactive leave types")
    leave_types = service.list_leave_types(include_inactive=include_inactive)
    return ApiResponse.ok([LeaveTypeResponse.model_validate(lt) for lt in leave_types])


@router.get("/{leave_type_id}", response_model=ApiResponse[LeaveTypeResponse])
def get_leave_type(
    leave_type_id: int,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    return ApiResponse.ok(LeaveTypeResponse.model_validate(service.get_leave_type_by_id(leave_type_id)))


@router.post("", response_model=ApiResponse[LeaveTypeResponse], status_code=status.HTTP_201_CREATED)
def create_leave_type(
    payload: LeaveTypeCreate,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    leave_type = service.create_leave_type(payload, actor_id=actor.employee_id)
    return ApiResponse.ok(LeaveTypeResponse.model_validate(leave_type))


@router.put("/{leave_type_id}", response_model=ApiResponse[LeaveTypeResponse])
def update_leave_type(
    leave_type_id: int,
    payload: LeaveTypeUpdate,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    leave_type = service.update_leave_type(leave_type_id, payload, actor_id=actor.employee_id)
    return ApiResponse.ok(LeaveTypeResponse.model_validate(leave_type))


@router.post("/{leave_type_id}/deactivate", response_model=ApiResponse[LeaveTypeResponse])
def deactivate_leave_type(
    leave_type_id: int,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    leave_type = service.deactivate_leave_type(leave_type_id, actor_id=actor.employee_id)
    return ApiResponse.ok(LeaveTypeResponse.model_validate(leave_type))


@router.delete("/{leave_type_id}", response_model=ApiResponse[dict])
def delete_leave_type(
    leave_type_id: int,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveTypeService = Depends(get_leave_type_service)
):
    """Fails with 409 while balances or requests reference the type."""
    service.delete_leave_type(leave_type_id, actor_id=actor.employee_id)
    return ApiResponse.ok({"id": leave_type_id, "deleted": True})
