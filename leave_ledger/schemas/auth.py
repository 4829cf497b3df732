from pydantic import BaseModel
from typing import Optional

from leave_ledger.core.security import ADMIN_ROLES, APPROVER_ROLES, UserRole


class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[str] = None
    manager_id: Optional[str] = None


class CurrentActor(BaseModel):
    """The authenticated caller, as resolved from the bearer token."""
    employee_id: str
    role: UserRole
    manager_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def can_approve(self) -> bool:
        """Check if the caller can approve or reject leave requests."""
        return self.role in APPROVER_ROLES
