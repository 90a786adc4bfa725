import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth.dependencies import AuthUser, auth_error, authenticate_token
from ..auth.tokens import (
    InvalidTokenError,
    REFRESH,
    TokenError,
    TokenExpiredError,
    generate_token_pair,
    refresh_access_token,
    verify_token,
)
from ..core.config import Config
from ..schemas import RefreshRequest, SendVerificationRequest, SupabaseTokenExchange, VerifyEmailRequest
from ..services import verification
from ..services.supabase_service import get_profile, verify_supabase_token


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _public_profile(profile: dict) -> dict:
    return {
        "id": profile.get("id"),
        "email": profile.get("email"),
        "username": profile.get("username"),
        "role": profile.get("role"),
        "avatar_url": profile.get("avatar_url"),
        "points": profile.get("points"),
    }


@router.post("/token")
async def exchange_token(body: SupabaseTokenExchange):
    """Trade a Supabase session token for an app access/refresh token pair."""
    supabase_user = verify_supabase_token(body.access_token)
    profile = get_profile(supabase_user["id"])
    if profile.get("is_banned"):
        raise auth_error(403, "Account is banned", "ACCOUNT_BANNED")

    profile = {**profile, "email": profile.get("email") or supabase_user.get("email")}
    tokens = generate_token_pair(profile)
    logger.info(f"Issued tokens for user {profile['id']}")
    return {
        "success": True,
        "user": _public_profile(profile),
        "expiresIn": Config.JWT_EXPIRES_IN,
        **tokens,
    }


@router.post("/refresh")
async def refresh_token(body: RefreshRequest):
    try:
        decoded = verify_token(body.refresh_token)
    except TokenExpiredError as e:
        raise auth_error(401, str(e), "TOKEN_EXPIRED")
    except TokenError as e:
        raise auth_error(401, str(e), "INVALID_TOKEN")

    if decoded.get("type") != REFRESH:
        raise auth_error(401, "Invalid token type for refresh", "INVALID_TOKEN_TYPE")

    profile = get_profile(decoded["userId"])
    if profile.get("is_banned"):
        raise auth_error(403, "Account is banned", "ACCOUNT_BANNED")

    try:
        tokens = refresh_access_token(body.refresh_token, profile)
    except InvalidTokenError as e:
        raise auth_error(401, str(e), "INVALID_TOKEN")
    return {"success": True, "expiresIn": Config.JWT_EXPIRES_IN, **tokens}


@router.get("/me")
async def me(user: AuthUser = Depends(authenticate_token)):
    try:
        profile = get_profile(user.id)
    except HTTPException as e:
        if e.status_code != 404:
            raise
        profile = {"id": user.id, "email": user.email, "username": user.username, "role": user.role}
    return {"success": True, "user": _public_profile(profile)}


@router.post("/send-verification")
async def send_verification(body: SendVerificationRequest):
    return verification.send_verification(body.email, body.username)


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest):
    return verification.verify_email(body.email, body.code)
