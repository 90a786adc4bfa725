import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from fastapi import HTTPException
from supabase import Client

from ..core.config import Config
from ..core.lazy import loader


logger = logging.getLogger(__name__)


def get_client() -> Client:
    return loader.get_supabase()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def verify_supabase_token(access_token: str) -> Dict[str, Any]:
    """Resolve the Supabase Auth user behind a session access token."""
    if not access_token:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        supabase = get_client()
        response = supabase.auth.get_user(access_token)
    except Exception as e:
        logger.warning(f"Supabase token validation failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return {
        "id": str(getattr(user, "id", "")),
        "email": getattr(user, "email", None),
    }


def get_profile(user_id: str) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('profiles')
            .select('id, username, email, role, avatar_url, points, is_banned')
            .eq('id', user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch profile {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch user profile")

    if not result.data:
        raise HTTPException(status_code=404, detail=f"Profile not found: {user_id}")
    return result.data[0]


def _infer_storage_path_from_url(url_or_path: str, bucket: str) -> str:
    """Object path inside ``bucket`` for a stored path, public URL or signed URL."""
    if not url_or_path:
        raise HTTPException(status_code=400, detail="Empty storage URL/path")
    if '://' not in url_or_path:
        return url_or_path.lstrip('/')
    segments = [seg for seg in urlparse(url_or_path).path.split('/') if seg]
    if bucket in segments:
        relative_segments = segments[segments.index(bucket) + 1:]
        if relative_segments:
            return '/'.join(relative_segments)
    raise HTTPException(status_code=400, detail=f"URL does not point into the {bucket} bucket")


def _signed_url_from_result(signed_result: Any) -> Optional[str]:
    if isinstance(signed_result, dict):
        return (
            signed_result.get('signedURL') or
            signed_result.get('signed_url') or
            signed_result.get('signedUrl') or
            signed_result.get('url')
        )
    return str(signed_result) if signed_result else None


def create_signed_url_for_storage_object(url_or_path: str, *, expires_in_seconds: int = 3600) -> str:
    object_path = _infer_storage_path_from_url(url_or_path, Config.SUPABASE_BUCKET)
    try:
        supabase: Client = get_client()
        signed_result = supabase.storage.from_(Config.SUPABASE_BUCKET).create_signed_url(object_path, expires_in_seconds)
    except Exception as e:
        logger.error(f"Failed to create signed URL for {object_path}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create signed URL for image")

    signed_url = _signed_url_from_result(signed_result)
    if not signed_url:
        logger.error(f"Invalid signed URL response from Supabase for {object_path}")
        raise HTTPException(status_code=500, detail="Failed to create signed URL for image")
    return signed_url


def upload_to_supabase(file_bytes: bytes, filename: str, content_type: str, user_id: Optional[str] = None):

    try:
        supabase: Client = get_client()

        if user_id:
            file_path = f"{user_id}/reports/{filename}"
        else:
            file_path = f"anonymous/reports/{filename}"

        upload_result = supabase.storage.from_(Config.SUPABASE_BUCKET).upload(
            path=file_path,
            file=file_bytes,
            file_options={
                "content-type": content_type,
                "cache-control": "3600"
            }
        )

        upload_error = None
        if isinstance(upload_result, dict):
            upload_error = upload_result.get('error')
        else:
            if hasattr(upload_result, 'error') and getattr(upload_result, 'error'):
                upload_error = str(getattr(upload_result, 'error'))
            elif hasattr(upload_result, 'status_code') and getattr(upload_result, 'status_code') and getattr(upload_result, 'status_code') >= 400:
                upload_error = f"HTTP {getattr(upload_result, 'status_code')}: {getattr(upload_result, 'text', None)}"

        if upload_error:
            raise RuntimeError(f"Supabase upload error: {upload_error}")

        signed_res = supabase.storage.from_(Config.SUPABASE_BUCKET).create_signed_url(file_path, 3600)

        return {
            "storage_path": file_path,
            "signed_url": _signed_url_from_result(signed_res),
        }
    except Exception as e:
        logger.error(f"Failed to upload to Supabase: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to upload to Supabase: {e}")


def check_connection() -> None:
    """Cheap round trip used by the readiness probe."""
    supabase = get_client()
    supabase.table('profiles').select('id').limit(1).execute()
