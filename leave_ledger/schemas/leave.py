from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from typing import Optional

from leave_ledger.models.leave_request import LeaveStatus

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# --- Leave types ---

class LeaveTypeBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: str = Field(..., min_length=1, max_length=200)
    accrual_rate: float = Field(..., ge=0)
    requires_documentation: bool = False
    requires_approval: bool = True
    max_days: Optional[int] = Field(None, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=0)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class LeaveTypeCreate(LeaveTypeBase):
    active: bool = True


class LeaveTypeUpdate(LeaveTypeBase):
    active: Optional[bool] = None


class LeaveTypeResponse(BaseModel):
    id: int
    name: str
    description: str
    accrual_rate: float
    requires_documentation: bool
    requires_approval: bool
    max_days: Optional[int] = None
    max_consecutive_days: Optional[int] = None
    active: bool
    color: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# --- Leave balances ---

class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: str
    leave_type_id: int
    year: int
    total: float
    used: float
    pending: float
    available: float

    model_config = ConfigDict(from_attributes=True)


class AvailableBalanceResponse(BaseModel):
    employee_id: str
    leave_type_id: int
    year: int
    available: float


class LeaveBalanceAdjustRequest(BaseModel):
    """Positive adjustments add to the entitlement (total), negative ones remove from it."""
    employee_id: str = Field(..., min_length=1)
    leave_type_id: int
    adjustment: float
    reason: str = Field(..., min_length=1, max_length=500)
    year: Optional[int] = Field(None, ge=1900, le=9999)


# --- Leave requests ---

class LeaveRequestCreate(BaseModel):
    """Date order is checked by the lifecycle service, which answers with VALIDATION_ERROR."""
    leave_type_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=500)


class LeaveRequestUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=500)


class LeaveApproveRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=200)


class LeaveRejectRequest(BaseModel):
    # Blank comments are rejected by the lifecycle service, not here, so the
    # caller gets the same VALIDATION_ERROR whichever layer it calls.
    comments: Optional[str] = Field(None, max_length=200)


class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: str
    manager_id: Optional[str] = None
    leave_type_id: int
    start_date: date
    end_date: date
    number_of_days: int
    reason: Optional[str] = None
    status: LeaveStatus
    approved_by_id: Optional[str] = None
    comments: Optional[str] = None
    cancelled_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)
