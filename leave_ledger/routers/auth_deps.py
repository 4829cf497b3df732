"""
RBAC Dependencies.
Resolves the caller from the bearer token and gates endpoints by role
before any service method runs.
"""
import logging
from typing import Callable, List, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError

from leave_ledger.core.exceptions import AccessDeniedError, AuthenticationError
from leave_ledger.core.security import ADMIN_ROLES, APPROVER_ROLES, UserRole, decode_access_token
from leave_ledger.schemas.auth import CurrentActor, TokenData

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> CurrentActor:
    """
    Extracts and validates the current caller from the JWT token.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise AuthenticationError()

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise AuthenticationError("TOKEN_EXPIRED")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise AuthenticationError("Invalid token type")

    token_data = TokenData(
        sub=payload.get("sub"),
        role=payload.get("role"),
        manager_id=payload.get("manager_id")
    )
    if not token_data.sub:
        logger.warning("Authentication failed: Missing subject in token")
        raise AuthenticationError("Missing subject in token")

    try:
        return CurrentActor(
            employee_id=token_data.sub,
            role=token_data.role or UserRole.EMPLOYEE,
            manager_id=token_data.manager_id
        )
    except PydanticValidationError:
        logger.warning(f"Authentication failed: Unknown role {token_data.role!r}")
        raise AuthenticationError("Unknown role in token")


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the caller has one of the allowed roles.

    Usage:
        @router.post("/admin-only")
        def admin_endpoint(actor: CurrentActor = Depends(require_role([UserRole.ADMIN]))):
            ...
    """
    def role_checker(actor: CurrentActor = Depends(get_current_actor)) -> CurrentActor:
        if actor.role not in allowed_roles:
            raise AccessDeniedError(
                f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return actor
    return role_checker


def require_manager():
    """Shorthand for the roles allowed to approve or reject leave."""
    return require_role(list(APPROVER_ROLES))


def require_admin():
    """Shorthand for requiring admin roles only."""
    return require_role(list(ADMIN_ROLES))
