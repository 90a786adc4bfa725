"""Push subscriptions, in-app notifications and FCM delivery."""

import logging
from typing import Any, Dict, List, Optional

import requests
from fastapi import HTTPException
from supabase import Client

from ..core.config import Config
from ..core.http import post_json, response_json
from ..core.lazy import loader
from .supabase_service import get_client, utcnow_iso


logger = logging.getLogger(__name__)

FCM_URL = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"
PLATFORMS = ('web', 'android', 'ios')
FCM_TIMEOUT_SECONDS = 10


def register_token(user_id: str, token: str, platform: str = 'web', user_agent: Optional[str] = None) -> Dict[str, Any]:
    token = (token or '').strip()
    if not token:
        raise HTTPException(status_code=400, detail="Push token is required")
    if platform not in PLATFORMS:
        raise HTTPException(status_code=400, detail=f"Invalid platform. Allowed: {', '.join(PLATFORMS)}")

    try:
        supabase: Client = get_client()
        result = supabase.table('push_subscriptions').upsert(
            {
                'user_id': user_id,
                'token': token,
                'platform': platform,
                'user_agent': user_agent,
                'updated_at': utcnow_iso(),
            },
            on_conflict='token',
        ).execute()
    except Exception as e:
        logger.error(f"Failed to register push token for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to register push token")
    return result.data[0] if result.data else {}


def unregister_token(user_id: str, token: str) -> bool:
    try:
        supabase: Client = get_client()
        result = supabase.table('push_subscriptions').delete().eq('user_id', user_id).eq('token', token).execute()
    except Exception as e:
        logger.error(f"Failed to unregister push token for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to unregister push token")
    return bool(result.data)


def _remove_token(supabase: Client, token: str) -> None:
    try:
        supabase.table('push_subscriptions').delete().eq('token', token).execute()
        logger.info("Removed unregistered push token")
    except Exception as e:
        logger.warning(f"Failed to remove stale push token: {e}")


def create_notification(
    user_id: str,
    title: str,
    message: str,
    type: str = 'info',
    link: Optional[str] = None,
) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = supabase.table('notifications').insert({
            'user_id': user_id,
            'title': title,
            'message': message,
            'type': type,
            'link': link,
            'read': False,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to create notification for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create notification")
    return result.data[0] if result.data else {}


def list_notifications(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    limit = max(1, min(int(limit), 100))
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('notifications')
            .select('*')
            .eq('user_id', user_id)
            .order('created_at', desc=True)
            .limit(limit)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch notifications for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch notifications")
    return result.data or []


def mark_notification_read(notification_id: str, user_id: str) -> Dict[str, Any]:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('notifications')
            .update({'read': True})
            .eq('id', notification_id)
            .eq('user_id', user_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to mark notification {notification_id} as read: {e}")
        raise HTTPException(status_code=500, detail="Failed to update notification")
    if not result.data:
        raise HTTPException(status_code=404, detail="Notification not found")
    return result.data[0]


def _is_unregistered(response: requests.Response) -> bool:
    if response.status_code == 404:
        return True
    error = response_json(response).get('error') or {}
    if error.get('status') == 'UNREGISTERED':
        return True
    return any(
        detail.get('errorCode') == 'UNREGISTERED'
        for detail in error.get('details') or []
        if isinstance(detail, dict)
    )


def send_push_to_user(user_id: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> int:
    """Send a push message to every device registered by ``user_id``.

    Returns the number of devices that accepted the message. Tokens FCM
    reports as unregistered are deleted.
    """
    credentials = loader.get_google_credentials() if Config.FIREBASE_PROJECT_ID else None
    if credentials is None:
        logger.warning("FCM is not configured; skipping push notification")
        return 0

    supabase: Client = get_client()
    subscriptions = supabase.table('push_subscriptions').select('token').eq('user_id', user_id).execute()
    tokens = [row['token'] for row in subscriptions.data or [] if row.get('token')]
    if not tokens:
        return 0

    url = FCM_URL.format(project=Config.FIREBASE_PROJECT_ID)
    headers = {"Authorization": f"Bearer {credentials.token}"}
    # FCM data payloads only accept string values
    string_data = {key: str(value) for key, value in (data or {}).items()}

    sent = 0
    for token in tokens:
        payload = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": string_data,
            }
        }
        try:
            response = post_json(url, payload, headers=headers, timeout_seconds=FCM_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            logger.warning(f"FCM request failed for {user_id}: {e}")
            continue

        if response.ok:
            sent += 1
        elif _is_unregistered(response):
            _remove_token(supabase, token)
        else:
            logger.warning(f"FCM rejected message for {user_id}: {response.status_code} {response.text[:200]}")

    logger.info(f"Push sent to {sent}/{len(tokens)} devices for {user_id}")
    return sent


def notify_user(
    user_id: str,
    title: str,
    message: str,
    type: str = 'info',
    link: Optional[str] = None,
) -> bool:
    """Store a notification and push it; never raises."""
    try:
        create_notification(user_id, title, message, type, link)
    except HTTPException as e:
        logger.warning(f"Notification for {user_id} not stored: {e.detail}")
        return False

    try:
        send_push_to_user(user_id, title, message, {'type': type, 'link': link or ''})
    except Exception as e:
        logger.warning(f"Push delivery failed for {user_id}: {e}")
    return True
