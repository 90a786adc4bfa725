import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from .reports import get_report
from .supabase_service import get_client, utcnow_iso


logger = logging.getLogger(__name__)

COMMENT_TYPES = ('comment', 'status_update', 'assignment', 'resolution')
STAFF_COMMENT_TYPES = ('status_update', 'assignment', 'resolution')
STAFF_ROLES = ('patrol', 'admin')
MAX_COMMENT_LENGTH = 2000
DELETED_MARKER = '[deleted]'
UNKNOWN_PROFILE = {'username': 'Unknown', 'avatar_url': None}


def _fetch_comment(supabase: Client, report_id: str, comment_id: str) -> Dict[str, Any]:
    result = (
        supabase
        .table('report_comments')
        .select('*')
        .eq('id', comment_id)
        .eq('report_id', report_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(status_code=404, detail="Comment not found")
    return result.data[0]


def _clean_text(comment: str) -> str:
    text = (comment or '').strip()
    if not text:
        raise HTTPException(status_code=400, detail="Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=400, detail=f"Comment exceeds {MAX_COMMENT_LENGTH} characters")
    return text


def _profiles_by_id(supabase: Client, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    if not user_ids:
        return {}
    try:
        result = supabase.table('profiles').select('id, username, avatar_url').in_('id', user_ids).execute()
    except Exception as e:
        logger.warning(f"Failed to fetch comment author profiles: {e}")
        return {}
    return {row['id']: {'username': row.get('username'), 'avatar_url': row.get('avatar_url')} for row in result.data or []}


def _record_edit(supabase: Client, comment_id: str, previous: str) -> None:
    try:
        supabase.table('report_comment_edits').insert({
            'comment_id': comment_id,
            'previous_comment': previous,
        }).execute()
    except Exception as e:
        logger.warning(f"Failed to record edit history for comment {comment_id}: {e}")


def list_comments(report_id: str, viewer_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Comments on a report, oldest first, with author profile and like data."""
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('report_comments')
            .select('*')
            .eq('report_id', report_id)
            .order('created_at')
            .execute()
        )
        comments = result.data or []
        comment_ids = [c['id'] for c in comments]
        likes = (
            supabase.table('report_comment_likes').select('comment_id, user_id').in_('comment_id', comment_ids).execute().data
            if comment_ids else []
        )
    except Exception as e:
        logger.error(f"Failed to fetch comments for report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch comments")

    profiles = _profiles_by_id(supabase, sorted({c['user_id'] for c in comments if c.get('user_id')}))
    like_counts: Dict[str, int] = {}
    liked_by_viewer = set()
    for like in likes or []:
        like_counts[like['comment_id']] = like_counts.get(like['comment_id'], 0) + 1
        if viewer_id and like.get('user_id') == viewer_id:
            liked_by_viewer.add(like['comment_id'])

    return [
        {
            **comment,
            'user_profile': profiles.get(comment.get('user_id'), UNKNOWN_PROFILE),
            'likes_count': like_counts.get(comment['id'], 0),
            'is_liked': comment['id'] in liked_by_viewer,
        }
        for comment in comments
    ]


def count_comments(report_id: str) -> int:
    try:
        supabase: Client = get_client()
        result = supabase.table('report_comments').select('id').eq('report_id', report_id).execute()
    except Exception as e:
        logger.error(f"Failed to count comments for report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to count comments")
    return len(result.data or [])


def add_comment(
    report_id: str,
    user_id: str,
    comment: str,
    comment_type: str = 'comment',
    role: Optional[str] = None,
) -> Dict[str, Any]:
    """Post a comment on an existing report.

    Only patrol officers and admins may post status, assignment or
    resolution notes.
    """
    if comment_type not in COMMENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid comment type. Allowed: {', '.join(COMMENT_TYPES)}")
    if comment_type in STAFF_COMMENT_TYPES and role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail=f"Only patrol or admin users can post {comment_type} comments")
    text = _clean_text(comment)
    get_report(report_id)

    try:
        supabase: Client = get_client()
        result = supabase.table('report_comments').insert({
            'report_id': report_id,
            'user_id': user_id,
            'comment': text,
            'comment_type': comment_type,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to add comment to report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to add comment")

    if not result.data:
        raise HTTPException(status_code=500, detail="Failed to add comment")
    created = result.data[0]
    profile = _profiles_by_id(supabase, [user_id]).get(user_id, UNKNOWN_PROFILE)
    return {**created, 'user_profile': profile, 'likes_count': 0, 'is_liked': False}


def update_comment(report_id: str, comment_id: str, user_id: str, comment: str) -> Dict[str, Any]:
    text = _clean_text(comment)
    try:
        supabase: Client = get_client()
        existing = _fetch_comment(supabase, report_id, comment_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update comment")

    if existing.get('user_id') != user_id:
        raise HTTPException(status_code=403, detail="You can only edit your own comments")

    _record_edit(supabase, comment_id, existing.get('comment') or '')
    try:
        result = (
            supabase
            .table('report_comments')
            .update({'comment': text, 'updated_at': utcnow_iso()})
            .eq('id', comment_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to update comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update comment")

    if not result.data:
        raise HTTPException(status_code=404, detail="Comment not found")
    return result.data[0]


def delete_comment(report_id: str, comment_id: str, user_id: str, is_admin: bool = False) -> None:
    try:
        supabase: Client = get_client()
        existing = _fetch_comment(supabase, report_id, comment_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete comment")

    if existing.get('user_id') != user_id and not is_admin:
        raise HTTPException(status_code=403, detail="You can only delete your own comments")

    _record_edit(supabase, comment_id, DELETED_MARKER)
    try:
        supabase.table('report_comment_likes').delete().eq('comment_id', comment_id).execute()
        supabase.table('report_comments').delete().eq('id', comment_id).execute()
    except Exception as e:
        logger.error(f"Failed to delete comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete comment")
    logger.info(f"Comment {comment_id} on report {report_id} deleted by {user_id}")


def get_edit_history(report_id: str, comment_id: str) -> List[Dict[str, Any]]:
    """Previous versions of a comment, most recent first."""
    try:
        supabase: Client = get_client()
        _fetch_comment(supabase, report_id, comment_id)
        result = (
            supabase
            .table('report_comment_edits')
            .select('id, previous_comment, created_at')
            .eq('comment_id', comment_id)
            .order('created_at', desc=True)
            .execute()
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch edit history for comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch edit history")
    return result.data or []


def toggle_like(report_id: str, comment_id: str, user_id: str) -> Dict[str, Any]:
    """Like the comment, or remove the like when the user already gave one."""
    try:
        supabase: Client = get_client()
        _fetch_comment(supabase, report_id, comment_id)
        existing = (
            supabase
            .table('report_comment_likes')
            .select('id')
            .eq('comment_id', comment_id)
            .eq('user_id', user_id)
            .limit(1)
            .execute()
        )
        if existing.data:
            supabase.table('report_comment_likes').delete().eq('comment_id', comment_id).eq('user_id', user_id).execute()
            liked = False
        else:
            supabase.table('report_comment_likes').insert({'comment_id': comment_id, 'user_id': user_id}).execute()
            liked = True
        likes = supabase.table('report_comment_likes').select('id').eq('comment_id', comment_id).execute()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to toggle like on comment {comment_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update like")
    return {'liked': liked, 'likes_count': len(likes.data or [])}
