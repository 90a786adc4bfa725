import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException
from supabase import Client

from ..core.validation import validate_email
from .email import EmailService, get_email_service
from .email.templates import CODE_TTL_MINUTES
from .supabase_service import get_client


logger = logging.getLogger(__name__)

TABLE = 'email_verifications'


def generate_verification_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def send_verification(email: str, username: Optional[str] = None, email_service: Optional[EmailService] = None) -> Dict[str, Any]:
    """Store a fresh code for ``email`` and deliver it."""
    email = validate_email(email)
    username = (username or '').strip() or 'User'
    code = generate_verification_code()
    expires_at = _now() + timedelta(minutes=CODE_TTL_MINUTES)

    try:
        supabase: Client = get_client()
        # Only the newest code stays valid
        supabase.table(TABLE).delete().eq('email', email).is_('verified_at', 'null').execute()
        supabase.table(TABLE).insert({
            'email': email,
            'code': code,
            'expires_at': expires_at.isoformat(),
        }).execute()
    except Exception as e:
        logger.error(f"Failed to store verification code for {email}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create verification code")

    service = email_service or get_email_service()
    if not service.send_verification_email(email, code, username):
        raise HTTPException(status_code=500, detail="Failed to send verification email")

    return {
        "success": True,
        "message": "Verification code sent",
        "expires_at": expires_at.isoformat(),
    }


def verify_email(email: str, code: str) -> Dict[str, Any]:
    email = validate_email(email)
    code = (code or '').strip()
    if not code:
        raise HTTPException(status_code=400, detail="Verification code is required")

    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table(TABLE)
            .select('id, email, code, expires_at, verified_at')
            .eq('email', email)
            .eq('code', code)
            .is_('verified_at', 'null')
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to look up verification code for {email}: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify email")

    now = _now()
    record = next(
        (row for row in result.data or [] if (_parse_timestamp(row.get('expires_at')) or now) > now),
        None,
    )
    if record is None:
        raise HTTPException(status_code=400, detail="Invalid or expired verification code")

    verified_at = now.isoformat()
    try:
        supabase.table(TABLE).update({'verified_at': verified_at}).eq('id', record['id']).execute()
    except Exception as e:
        logger.error(f"Failed to mark verification {record['id']} as used: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify email")

    try:
        supabase.table('profiles').update({'email_verified': True}).eq('email', email).execute()
    except Exception as e:
        logger.warning(f"Failed to flag profile as verified for {email}: {e}")

    return {"success": True, "message": "Email verified successfully", "verified_at": verified_at}


def cleanup_expired_verifications() -> int:
    supabase: Client = get_client()
    result = (
        supabase
        .table(TABLE)
        .delete()
        .lt('expires_at', _now().isoformat())
        .is_('verified_at', 'null')
        .execute()
    )
    removed = len(result.data or [])
    if removed:
        logger.info(f"Removed {removed} expired verification codes")
    return removed
