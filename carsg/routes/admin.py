from fastapi import APIRouter, Depends, Response

from ..auth.dependencies import AuthUser, require_admin
from ..core.cache import leaderboard_cache, statistics_cache
from ..services import reports


router = APIRouter(prefix="/admin", tags=["admin"])

STATISTICS_KEY = "report_statistics"


@router.get("/statistics")
async def statistics(response: Response, user: AuthUser = Depends(require_admin)):
    cached = statistics_cache.get(STATISTICS_KEY)
    if cached is not None:
        response.headers["X-Cache"] = "HIT"
        return cached

    result = {"success": True, "statistics": reports.get_statistics()}
    statistics_cache.set(STATISTICS_KEY, result)
    response.headers["X-Cache"] = "MISS"
    return result


@router.get("/cache")
async def cache_stats(user: AuthUser = Depends(require_admin)):
    return {
        "leaderboard": leaderboard_cache.stats(),
        "statistics": statistics_cache.stats(),
    }


@router.delete("/cache")
async def clear_cache(user: AuthUser = Depends(require_admin)):
    return {
        "success": True,
        "cleared": leaderboard_cache.clear() + statistics_cache.clear(),
    }
