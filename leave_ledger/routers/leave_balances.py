from typing import List, Optional

from fastapi import APIRouter, Depends

from leave_ledger.core.exceptions import AccessDeniedError
from leave_ledger.core.schemas import ApiResponse
from leave_ledger.dependencies import (
    get_current_actor,
    get_leave_balance_service,
    require_admin,
    require_manager,
)
from leave_ledger.schemas.auth import CurrentActor
from leave_ledger.schemas.leave import (
    AvailableBalanceResponse,
    LeaveBalanceAdjustRequest,
    LeaveBalanceResponse,
)
from leave_ledger.services.leave_balance_service import LeaveBalanceService

router = APIRouter(prefix="/leave-balances", tags=["leave-balances"])


@router.get("/my-balances", response_model=ApiResponse[List[LeaveBalanceResponse]])
def get_my_balances(
    year: Optional[int] = None,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveBalanceService = Depends(get_leave_balance_service)
):
    balances = service.list_balances(actor.employee_id, year=year)
    return ApiResponse.ok([LeaveBalanceResponse.model_validate(b) for b in balances])


@router.get("/employee/{employee_id}", response_model=ApiResponse[List[LeaveBalanceResponse]])
def get_employee_balances(
    employee_id: str,
    year: Optional[int] = None,
    actor: CurrentActor = Depends(require_manager()),
    service: LeaveBalanceService = Depends(get_leave_balance_service)
):
    balances = service.list_balances(employee_id, year=year)
    return ApiResponse.ok([LeaveBalanceResponse.model_validate(b) for b in balances])


@router.get("/available", response_model=ApiResponse[AvailableBalanceResponse])
def get_available_balance(
    leave_type_id: int,
    year: int,
    employee_id: Optional[str] = None,
    actor: CurrentActor = Depends(get_current_actor),
    service: LeaveBalanceService = Depends(get_leave_balance_service)
):
    """Days still bookable; employees may only look at their own ledger."""
    employee_id = employee_id or actor.employee_id
    if employee_id != actor.employee_id and not actor.can_approve:
        raise AccessDeniedError("You can only view your own leave balance")
    available = service.get_available(employee_id, leave_type_id, year)
    return ApiResponse.ok(AvailableBalanceResponse(
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        available=available
    ))


@router.post("/adjust", response_model=ApiResponse[LeaveBalanceResponse])
def adjust_balance(
    payload: LeaveBalanceAdjustRequest,
    actor: CurrentActor = Depends(require_admin()),
    service: LeaveBalanceService = Depends(get_leave_balance_service)
):
    balance = service.adjust(
        employee_id=payload.employee_id,
        leave_type_id=payload.leave_type_id,
        adjustment=payload.adjustment,
        reason=payload.reason,
        actor_id=actor.employee_id,
        actor_role=actor.role,
        year=payload.year
    )
    return ApiResponse.ok(LeaveBalanceResponse.model_validate(balance))
