from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import AuthUser, authenticate_token
from ..core.validation import validate_identifier
from ..schemas import PushRegister, PushUnregister
from ..services import push


router = APIRouter(tags=["push"])


@router.post("/push/register")
async def register(body: PushRegister, user: AuthUser = Depends(authenticate_token)):
    push.register_token(user.id, body.token, body.platform, body.user_agent)
    return {"success": True}


@router.delete("/push/register")
async def unregister(body: PushUnregister, user: AuthUser = Depends(authenticate_token)):
    return {"success": True, "removed": push.unregister_token(user.id, body.token)}


@router.get("/notifications")
async def notifications(limit: int = Query(50, ge=1, le=100), user: AuthUser = Depends(authenticate_token)):
    return {"success": True, "notifications": push.list_notifications(user.id, limit)}


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("notification_id", notification_id)
    return {"success": True, "notification": push.mark_notification_read(notification_id, user.id)}
