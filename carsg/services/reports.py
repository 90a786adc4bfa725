import logging
import secrets
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, UploadFile
from supabase import Client

from ..core.config import Config
from ..core.validation import validate_file
from .supabase_service import create_signed_url_for_storage_object, get_client, upload_to_supabase, utcnow_iso


logger = logging.getLogger(__name__)

CATEGORIES = ('infrastructure', 'safety', 'environmental', 'public services', 'other')
PRIORITIES = ('low', 'medium', 'high')
STATUSES = ('pending', 'in_progress', 'resolved', 'rejected', 'cancelled', 'verifying', 'awaiting_verification')
GROUPS = ('Engineering Group', 'Field Group', 'Maintenance Group', 'Other')
PRIORITY_LEVELS = {'low': 1, 'medium': 3, 'high': 5}

OPEN_STATUSES = ('pending', 'verifying')
MAX_IMAGES = 5
MAX_LIST_LIMIT = 100


def _fetch_report(supabase: Client, report_id: str) -> Optional[Dict[str, Any]]:
    result = supabase.table('reports').select('*').eq('id', report_id).limit(1).execute()
    return result.data[0] if result.data else None


def _update_report(supabase: Client, report_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {**changes, 'updated_at': utcnow_iso()}
    result = supabase.table('reports').update(changes).eq('id', report_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Report not found")
    return result.data[0]


def generate_case_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{now:%Y%m%d}-{secrets.randbelow(100000):05d}"


def list_reports(
    *,
    status: Optional[str] = None,
    category: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = MAX_LIST_LIMIT,
) -> List[Dict[str, Any]]:
    if status and status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(STATUSES)}")
    if category and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category. Allowed: {', '.join(CATEGORIES)}")
    limit = max(1, min(int(limit), MAX_LIST_LIMIT))

    try:
        supabase: Client = get_client()
        query = supabase.table('reports').select('*')
        if status:
            query = query.eq('status', status)
        if category:
            query = query.eq('category', category)
        if user_id:
            query = query.eq('user_id', user_id)
        result = query.order('created_at', desc=True).limit(limit).execute()
    except Exception as e:
        logger.error(f"Failed to fetch reports: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch reports")
    return result.data or []


def get_report(report_id: str) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        report = _fetch_report(supabase, report_id)
    except Exception as e:
        logger.error(f"Failed to fetch report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch report")
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


def daily_limit_for(supabase: Client, user_id: str) -> int:
    result = supabase.table('report_quotas').select('daily_limit').eq('user_id', user_id).limit(1).execute()
    if result.data and result.data[0].get('daily_limit') is not None:
        return int(result.data[0]['daily_limit'])
    return Config.REPORT_DAILY_LIMIT


def _check_quota(supabase: Client, user_id: str) -> None:
    since = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat()
    recent = (
        supabase
        .table('reports')
        .select('id')
        .eq('user_id', user_id)
        .gte('created_at', since)
        .execute()
    )
    limit = daily_limit_for(supabase, user_id)
    if len(recent.data or []) >= limit:
        raise HTTPException(status_code=429, detail=f"Report limit reached: at most {limit} reports per 24 hours")


def create_report(user_id: str, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Insert a report for ``user_id``.

    Returns ``(report, created)``; ``created`` is False when an earlier
    request with the same idempotency key already stored the report.
    """
    images = list(payload.get('images') or [])
    if len(images) > MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} images per report")

    idempotency_key = payload.get('idempotency_key')

    try:
        supabase: Client = get_client()
        if idempotency_key:
            existing = (
                supabase
                .table('reports')
                .select('*')
                .eq('idempotency_key', idempotency_key)
                .limit(1)
                .execute()
            )
            if existing.data:
                logger.info(f"Idempotent replay for report key {idempotency_key}")
                return existing.data[0], False

        _check_quota(supabase, user_id)

        location = payload.get('location') or {}
        record = {
            'user_id': user_id,
            'title': payload['title'].strip(),
            'description': payload['description'].strip(),
            'category': payload.get('category') or 'other',
            'priority': payload.get('priority') or 'medium',
            'status': 'pending',
            'location': {'lat': location.get('lat'), 'lng': location.get('lng')} if location else None,
            'location_address': location.get('address') if location else None,
            'images': images,
            'can_cancel': True,
            'idempotency_key': idempotency_key,
        }
        result = supabase.table('reports').insert(record).execute()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create report for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create report")

    if not result.data:
        raise HTTPException(status_code=500, detail="Failed to create report")
    return result.data[0], True


def update_status(report_id: str, status: str) -> Tuple[Dict[str, Any], Optional[str]]:
    """Change a report's status. Returns ``(report, previous_status)``."""
    if status not in STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Allowed: {', '.join(STATUSES)}")

    report = get_report(report_id)
    try:
        supabase: Client = get_client()
        updated = _update_report(supabase, report_id, {'status': status})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update status for report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update report")
    return updated, report.get('status')


def dispatch_report(
    report_id: str,
    assigned_group: str,
    priority_level: Optional[int] = None,
    assigned_patroller_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Assign a report to a response group."""
    if assigned_group not in GROUPS:
        raise HTTPException(status_code=400, detail=f"Invalid group. Allowed: {', '.join(GROUPS)}")
    if priority_level is not None and not 1 <= priority_level <= 5:
        raise HTTPException(status_code=400, detail="priority_level must be between 1 and 5")

    report = get_report(report_id)
    if report.get('status') in ('resolved', 'rejected', 'cancelled'):
        raise HTTPException(status_code=409, detail=f"Cannot dispatch a {report['status']} report")

    changes: Dict[str, Any] = {
        'assigned_group': assigned_group,
        'priority_level': priority_level or PRIORITY_LEVELS.get(report.get('priority'), 3),
        'can_cancel': False,
    }
    if assigned_patroller_name:
        changes['assigned_patroller_name'] = assigned_patroller_name
    if report.get('status') in OPEN_STATUSES:
        changes['status'] = 'in_progress'
    if not report.get('case_number'):
        changes['case_number'] = generate_case_number()

    try:
        supabase: Client = get_client()
        updated = _update_report(supabase, report_id, changes)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to dispatch report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to dispatch report")

    logger.info(f"Report {report_id} dispatched to {assigned_group} (case {updated.get('case_number')})")
    return updated


def cancel_report(report_id: str, user_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    report = get_report(report_id)
    if report.get('user_id') != user_id:
        raise HTTPException(status_code=403, detail="You can only cancel your own reports")
    if not report.get('can_cancel', True) or report.get('status') not in OPEN_STATUSES:
        raise HTTPException(status_code=409, detail="This report can no longer be cancelled")

    try:
        supabase: Client = get_client()
        updated = _update_report(supabase, report_id, {'status': 'cancelled', 'can_cancel': False})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to cancel report")

    if reason:
        try:
            supabase.table('report_comments').insert({
                'report_id': report_id,
                'user_id': user_id,
                'comment': f"Report cancelled: {reason}",
                'comment_type': 'status_update',
            }).execute()
        except Exception as e:
            logger.warning(f"Failed to add cancellation comment to report {report_id}: {e}")

    return updated


def rate_report(report_id: str, user_id: str, stars: int, comment: Optional[str] = None) -> Dict[str, Any]:
    if not 1 <= stars <= 5:
        raise HTTPException(status_code=400, detail="stars must be between 1 and 5")

    report = get_report(report_id)
    if report.get('user_id') != user_id:
        raise HTTPException(status_code=403, detail="Only the requester can rate this report")
    if report.get('status') != 'resolved':
        raise HTTPException(status_code=409, detail="Only resolved reports can be rated")

    try:
        supabase: Client = get_client()
        result = supabase.table('report_ratings').upsert(
            {
                'report_id': report_id,
                'requester_user_id': user_id,
                'stars': stars,
                'comment': comment,
            },
            on_conflict='report_id,requester_user_id',
        ).execute()
    except Exception as e:
        logger.error(f"Failed to rate report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save rating")
    return result.data[0] if result.data else {}


async def attach_image(report_id: str, user_id: str, file: UploadFile) -> Dict[str, Any]:
    report = get_report(report_id)
    if report.get('user_id') != user_id:
        raise HTTPException(status_code=403, detail="You can only add images to your own reports")

    images = list(report.get('images') or [])
    if len(images) >= MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} images per report")

    file_bytes = await file.read()
    validate_file(file, size=len(file_bytes))

    extension = file.filename.rsplit('.', 1)[-1].lower()
    filename = f"{report_id}_{uuid.uuid4().hex[:12]}.{extension}"
    upload_info = upload_to_supabase(file_bytes, filename, content_type=file.content_type, user_id=user_id)
    images.append(upload_info.get('signed_url') or upload_info['storage_path'])

    try:
        supabase: Client = get_client()
        return _update_report(supabase, report_id, {'images': images})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to attach image to report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to attach image")


def signed_image_urls(report_id: str, expires_in_seconds: int = 3600) -> List[str]:
    """Fresh signed URLs for a report's images; links outside the bucket pass through."""
    urls = []
    for image in get_report(report_id).get('images') or []:
        try:
            urls.append(create_signed_url_for_storage_object(image, expires_in_seconds=expires_in_seconds))
        except HTTPException as e:
            if e.status_code != 400:
                raise
            urls.append(image)
    return urls


def get_statistics() -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = supabase.table('reports').select('status, category, priority').execute()
    except Exception as e:
        logger.error(f"Failed to compute report statistics: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch statistics")

    rows = result.data or []
    return {
        "total": len(rows),
        "by_status": dict(Counter(row.get('status') for row in rows)),
        "by_category": dict(Counter(row.get('category') for row in rows)),
        "by_priority": dict(Counter(row.get('priority') for row in rows)),
    }
