import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .tokens import ACCESS, TokenError, TokenExpiredError, verify_token


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def auth_error(status_code: int, error: str, code: str, **extra) -> HTTPException:
    detail = {"success": False, "error": error, "code": code}
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


def user_from_token(token: str) -> AuthUser:
    """Decode an access token into an ``AuthUser``.

    Raises ``TokenError`` for invalid tokens and for refresh tokens.
    """
    decoded = verify_token(token)
    if decoded.get("type") != ACCESS:
        raise TokenError("Invalid token type")
    return AuthUser(
        id=decoded["userId"],
        email=decoded.get("email"),
        role=decoded.get("role"),
        username=decoded.get("username"),
    )


async def authenticate_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthUser:
    if not credentials or not credentials.credentials:
        raise auth_error(401, "Access token required", "MISSING_TOKEN")

    try:
        decoded = verify_token(credentials.credentials)
    except TokenExpiredError as e:
        raise auth_error(401, str(e), "TOKEN_EXPIRED")
    except TokenError as e:
        logger.warning(f"JWT authentication error: {e}")
        raise auth_error(401, str(e), "INVALID_TOKEN")

    if decoded.get("type") != ACCESS:
        raise auth_error(401, "Invalid token type", "INVALID_TOKEN_TYPE")

    return AuthUser(
        id=decoded["userId"],
        email=decoded.get("email"),
        role=decoded.get("role"),
        username=decoded.get("username"),
    )


async def optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthUser]:
    if not credentials or not credentials.credentials:
        return None
    try:
        return user_from_token(credentials.credentials)
    except TokenError as e:
        logger.warning(f"Optional auth failed: {e}")
        return None


def require_role(*allowed_roles: str):
    roles = list(allowed_roles)

    async def _check(user: AuthUser = Depends(authenticate_token)) -> AuthUser:
        if user.role not in roles:
            raise auth_error(
                403,
                "Insufficient permissions",
                "INSUFFICIENT_PERMISSIONS",
                required=roles,
                current=user.role,
            )
        return user

    return _check


require_admin = require_role("admin")
require_patrol_or_admin = require_role("patrol", "admin")
