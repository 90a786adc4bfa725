from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..auth.dependencies import AuthUser, authenticate_token, optional_auth
from ..core.cache import leaderboard_cache
from ..core.validation import validate_identifier
from ..services import points


router = APIRouter(tags=["gamification"])


@router.get("/leaderboard")
async def leaderboard(
    response: Response,
    limit: int = Query(10, ge=1, le=100),
    user: Optional[AuthUser] = Depends(optional_auth),
):
    include_admins = bool(user and user.is_admin)
    cache_key = (limit, include_admins)
    cached = leaderboard_cache.get(cache_key)
    if cached is not None:
        response.headers["X-Cache"] = "HIT"
        return cached

    result = {"success": True, "leaderboard": points.get_leaderboard(limit, include_admins)}
    leaderboard_cache.set(cache_key, result)
    response.headers["X-Cache"] = "MISS"
    return result


@router.get("/users/{user_id}/points-history")
async def points_history(user_id: str, user: AuthUser = Depends(authenticate_token)):
    validate_identifier("user_id", user_id)
    if user.id != user_id and not user.is_admin:
        raise HTTPException(status_code=403, detail="You can only view your own points history")
    return {"success": True, "history": points.get_points_history(user_id)}


@router.get("/users/{user_id}/achievements")
async def user_achievements(user_id: str):
    validate_identifier("user_id", user_id)
    return {"success": True, "achievements": points.get_user_achievements(user_id)}


@router.post("/achievements/check")
async def check_achievements(user: AuthUser = Depends(authenticate_token)):
    earned = points.check_achievements(user.id)
    if earned:
        leaderboard_cache.clear()
    return {"success": True, "newAchievements": [achievement.to_dict() for achievement in earned]}
