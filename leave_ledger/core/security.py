from datetime import datetime, timedelta, timezone
from typing import Optional
import enum
import logging

from jose import ExpiredSignatureError, JWTError, jwt

from leave_ledger.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT token.

    Returns the claims, ``{"error": "TOKEN_EXPIRED"}`` for an expired token,
    or None when the token cannot be verified.
    """
    if not token or not isinstance(token, str) or not token.strip():
        return None

    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        return {"error": "TOKEN_EXPIRED"}
    except JWTError as e:
        logger.debug(f"JWT decode failed: {e}")
        return None


class UserRole(str, enum.Enum):
    """
    Roles carried in the access token.

    - ADMIN / HR: leave type and balance administration, act on any request
    - MANAGER: approve or reject requests, view team leave
    - EMPLOYEE: self-service only
    """
    ADMIN = "ADMIN"
    HR = "HR"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


ADMIN_ROLES = (UserRole.ADMIN, UserRole.HR)
APPROVER_ROLES = (UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)
