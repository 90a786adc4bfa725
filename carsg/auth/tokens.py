"""JWT issuance and verification for Cars-G API clients.

Access and refresh tokens share one signing secret and are told apart by the
``type`` claim. Both carry the issuer ``cars-g-app`` and the audience
``cars-g-users``.
"""

import logging
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt

from ..core.config import Config


logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ISSUER = "cars-g-app"
AUDIENCE = "cars-g-users"
ACCESS = "access"
REFRESH = "refresh"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


class TokenError(Exception):
    """Raised when a token cannot be used."""


class TokenExpiredError(TokenError):
    pass


class InvalidTokenError(TokenError):
    pass


def parse_duration(value: str) -> timedelta:
    """Parse ``'24h'``, ``'7d'``, ``'15m'``, ``'30s'`` or a bare number of seconds."""
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def _user_field(user: Any, name: str) -> Any:
    if isinstance(user, Mapping):
        return user.get(name)
    return getattr(user, name, None)


def generate_token(user: Any, token_type: str = ACCESS) -> str:
    if token_type not in (ACCESS, REFRESH):
        raise ValueError(f"Unknown token type: {token_type}")

    user_id = _user_field(user, "id")
    if not user_id:
        raise ValueError("User id is required to issue a token")

    now_ms = int(time.time() * 1000)
    issued_at = now_ms // 1000
    lifetime = parse_duration(Config.JWT_REFRESH_EXPIRES_IN if token_type == REFRESH else Config.JWT_EXPIRES_IN)

    payload = {
        "userId": str(user_id),
        "email": _user_field(user, "email"),
        "role": _user_field(user, "role"),
        "username": _user_field(user, "username"),
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + int(lifetime.total_seconds()),
        "iss": ISSUER,
        "aud": AUDIENCE,
        # unique even for tokens minted in the same millisecond
        "jti": f"{user_id}-{token_type}-{now_ms}-{secrets.token_hex(4)}",
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=ALGORITHM)


def generate_token_pair(user: Any) -> Dict[str, str]:
    return {
        "accessToken": generate_token(user, ACCESS),
        "refreshToken": generate_token(user, REFRESH),
    }


def verify_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            Config.JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            issuer=ISSUER,
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT verification error: {e}")
        raise InvalidTokenError("Invalid token") from e
    except Exception as e:
        logger.error(f"JWT verification failed unexpectedly: {e}")
        raise TokenError("Token verification failed") from e


def extract_token_from_header(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):].strip() or None


def _unverified_claims(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None


def is_token_expired(token: str) -> bool:
    claims = _unverified_claims(token)
    if not claims or not isinstance(claims.get("exp"), (int, float)):
        return True
    return time.time() >= claims["exp"]


def get_token_expiration(token: str) -> Optional[datetime]:
    claims = _unverified_claims(token)
    if not claims or not isinstance(claims.get("exp"), (int, float)):
        return None
    return datetime.fromtimestamp(claims["exp"], tz=timezone.utc)


def refresh_access_token(refresh_token: str, user: Any) -> Dict[str, str]:
    decoded = verify_token(refresh_token)

    if decoded.get("type") != REFRESH:
        raise InvalidTokenError("Invalid token type for refresh")

    if decoded.get("userId") != str(_user_field(user, "id")):
        raise InvalidTokenError("Token user mismatch")

    return generate_token_pair(user)
