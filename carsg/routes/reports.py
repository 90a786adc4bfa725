import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile

from ..auth.dependencies import AuthUser, authenticate_token, optional_auth, require_admin, require_patrol_or_admin
from ..core.cache import leaderboard_cache, statistics_cache
from ..core.validation import validate_identifier
from ..schemas import CancelRequest, CommentCreate, CommentUpdate, DispatchRequest, RatingRequest, ReportCreate, StatusUpdate
from ..services import comments, points, push, reports
from ..services.realtime import publish_report_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])

STATUS_MESSAGES = {
    'in_progress': "Your report is now being worked on.",
    'resolved': "Your report has been resolved. Thank you for helping the community!",
    'rejected': "Your report was reviewed and rejected.",
    'verifying': "Your report is being verified.",
    'awaiting_verification': "Your report is awaiting verification.",
}


def _invalidate_caches() -> None:
    statistics_cache.clear()
    leaderboard_cache.clear()


def _award_for_transition(report: dict, previous_status: Optional[str]) -> None:
    status = report.get('status')
    if status == previous_status:
        return
    if status == 'in_progress' and previous_status in reports.OPEN_STATUSES:
        points.award_points_quietly(report.get('user_id'), 'REPORT_VERIFIED', report.get('id'))
    elif status == 'resolved':
        points.award_points_quietly(report.get('user_id'), 'REPORT_RESOLVED', report.get('id'))


def _notify_owner(report: dict) -> None:
    message = STATUS_MESSAGES.get(report.get('status'))
    if message and report.get('user_id'):
        push.notify_user(
            report['user_id'],
            f"Report update: {report.get('title') or 'your report'}",
            message,
            'report_update',
            f"/reports/{report.get('id')}",
        )


@router.get("")
async def list_reports(
    status: Optional[str] = None,
    category: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = Query(reports.MAX_LIST_LIMIT, ge=1, le=reports.MAX_LIST_LIMIT),
):
    if user_id:
        validate_identifier("user_id", user_id)
    return {"success": True, "reports": reports.list_reports(status=status, category=category, user_id=user_id, limit=limit)}


@router.post("", status_code=201)
async def create_report(body: ReportCreate, response: Response, user: AuthUser = Depends(authenticate_token)):
    report, created = reports.create_report(user.id, body.model_dump())
    if not created:
        response.status_code = 200
        return {"success": True, "report": report, "duplicate": True}

    logger.info(f"Report {report.get('id')} created by {user.id}")
    points.award_points_quietly(user.id, 'REPORT_SUBMITTED', report.get('id'))
    _invalidate_caches()
    await publish_report_event("REPORT_CREATED", report)
    return {"success": True, "report": report}


@router.get("/{report_id}")
async def get_report(report_id: str):
    validate_identifier("report_id", report_id)
    return {"success": True, "report": reports.get_report(report_id)}


@router.patch("/{report_id}/status")
async def update_status(report_id: str, body: StatusUpdate, user: AuthUser = Depends(require_patrol_or_admin)):
    validate_identifier("report_id", report_id)
    report, previous_status = reports.update_status(report_id, body.status)
    logger.info(f"Report {report_id} status {previous_status} -> {report.get('status')} by {user.id}")

    _award_for_transition(report, previous_status)
    if report.get('status') != previous_status:
        _notify_owner(report)
    _invalidate_caches()
    await publish_report_event("REPORT_UPDATED", report)
    return {"success": True, "report": report}


@router.post("/{report_id}/dispatch")
async def dispatch_report(report_id: str, body: DispatchRequest, user: AuthUser = Depends(require_admin)):
    validate_identifier("report_id", report_id)
    previous_status = reports.get_report(report_id).get('status')
    report = reports.dispatch_report(report_id, body.assigned_group, body.priority_level, body.assigned_patroller_name)

    _award_for_transition(report, previous_status)
    if report.get('status') != previous_status:
        _notify_owner(report)
    _invalidate_caches()
    await publish_report_event("REPORT_UPDATED", report)
    return {"success": True, "report": report}


@router.post("/{report_id}/cancel")
async def cancel_report(report_id: str, body: CancelRequest, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    report = reports.cancel_report(report_id, user.id, body.reason)
    _invalidate_caches()
    await publish_report_event("REPORT_UPDATED", report)
    return {"success": True, "report": report}


@router.post("/{report_id}/rating")
async def rate_report(report_id: str, body: RatingRequest, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    rating = reports.rate_report(report_id, user.id, body.stars, body.comment)
    return {"success": True, "rating": rating}


@router.get("/{report_id}/images")
async def image_urls(report_id: str):
    validate_identifier("report_id", report_id)
    return {"success": True, "images": reports.signed_image_urls(report_id)}


@router.post("/{report_id}/images")
async def upload_image(report_id: str, file: UploadFile = File(...), user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    try:
        report = await reports.attach_image(report_id, user.id, file)
    except HTTPException as e:
        logger.error(f"Image upload failed for report {report_id} ({e.status_code}): {e.detail}")
        raise
    await publish_report_event("REPORT_UPDATED", report)
    return {"success": True, "report": report}


@router.get("/{report_id}/comments")
async def list_comments(report_id: str, user: Optional[AuthUser] = Depends(optional_auth)):
    validate_identifier("report_id", report_id)
    thread = comments.list_comments(report_id, viewer_id=user.id if user else None)
    return {"success": True, "comments": thread, "count": len(thread)}


@router.get("/{report_id}/comments/count")
async def count_comments(report_id: str):
    validate_identifier("report_id", report_id)
    return {"success": True, "count": comments.count_comments(report_id)}


@router.post("/{report_id}/comments", status_code=201)
async def add_comment(report_id: str, body: CommentCreate, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    comment = comments.add_comment(report_id, user.id, body.comment, body.comment_type, role=user.role)
    logger.info(f"Comment {comment.get('id')} added to report {report_id} by {user.id}")
    return {"success": True, "comment": comment}


@router.patch("/{report_id}/comments/{comment_id}")
async def update_comment(
    report_id: str,
    comment_id: str,
    body: CommentUpdate,
    user: AuthUser = Depends(authenticate_token),
):
    validate_identifier("report_id", report_id)
    validate_identifier("comment_id", comment_id)
    return {"success": True, "comment": comments.update_comment(report_id, comment_id, user.id, body.comment)}


@router.delete("/{report_id}/comments/{comment_id}")
async def delete_comment(report_id: str, comment_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    validate_identifier("comment_id", comment_id)
    comments.delete_comment(report_id, comment_id, user.id, is_admin=user.is_admin)
    return {"success": True}


@router.get("/{report_id}/comments/{comment_id}/history")
async def comment_history(report_id: str, comment_id: str):
    validate_identifier("report_id", report_id)
    validate_identifier("comment_id", comment_id)
    return {"success": True, "history": comments.get_edit_history(report_id, comment_id)}


@router.post("/{report_id}/comments/{comment_id}/like")
async def toggle_comment_like(report_id: str, comment_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("report_id", report_id)
    validate_identifier("comment_id", comment_id)
    return {"success": True, **comments.toggle_like(report_id, comment_id, user.id)}
