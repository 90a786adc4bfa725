"""Points, leaderboard and achievements.

Point totals are kept by the ``award_points`` database function so the
profile total, ``points_history`` and ``user_stats`` change together.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from .supabase_service import get_client, utcnow_iso


logger = logging.getLogger(__name__)

POINTS_CONFIG = {
    'REPORT_SUBMITTED': 25,
    'REPORT_VERIFIED': 50,
    'REPORT_RESOLVED': 100,
    'DAILY_LOGIN': 5,
    'PROFILE_COMPLETED': 25,
}


@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    points: int
    icon: str
    requirement_type: str
    requirement_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


ACHIEVEMENTS: List[Achievement] = [
    Achievement('first_report', 'First Report', 'Submit your first community issue report', 25, '📝', 'reports_submitted', 1),
    Achievement('reporting_streak', 'Reporting Streak', 'Submit reports for 7 consecutive days', 100, '🔥', 'days_active', 7),
    Achievement('verified_reporter', 'Verified Reporter', 'Have 5 reports verified by administrators', 150, '✅', 'reports_verified', 5),
    Achievement('community_champion', 'Community Champion', 'Earn 1000 total points', 200, '🏆', 'points_earned', 1000),
    Achievement('problem_solver', 'Problem Solver', 'Have 10 reports resolved', 300, '🔧', 'reports_resolved', 10),
]
ACHIEVEMENTS_BY_ID = {achievement.id: achievement for achievement in ACHIEVEMENTS}

# achievement requirement -> user_stats column
_STAT_COLUMNS = {
    'reports_submitted': 'reports_submitted',
    'reports_verified': 'reports_verified',
    'reports_resolved': 'reports_resolved',
    'days_active': 'days_active',
    'points_earned': 'total_points',
}


def award_custom_points(user_id: str, points: int, reason: str, report_id: Optional[str] = None) -> int:
    try:
        supabase: Client = get_client()
        supabase.rpc('award_points', {
            'user_id': user_id,
            'points_to_award': points,
            'reason_text': reason,
            'report_id': report_id,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to award {points} points to {user_id} ({reason}): {e}")
        raise HTTPException(status_code=500, detail="Failed to award points")
    return points


def award_points(user_id: str, reason: str, report_id: Optional[str] = None) -> int:
    if reason not in POINTS_CONFIG:
        raise ValueError(f"Unknown points reason: {reason}")
    return award_custom_points(user_id, POINTS_CONFIG[reason], reason, report_id)


def award_points_quietly(user_id: Optional[str], reason: str, report_id: Optional[str] = None) -> Optional[int]:
    """Award points without letting a failure reach the caller."""
    if not user_id:
        return None
    try:
        return award_points(user_id, reason, report_id)
    except HTTPException as e:
        logger.warning(f"Skipping {reason} points for {user_id}: {e.detail}")
        return None


def get_points_history(user_id: str) -> List[Dict[str, Any]]:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('points_history')
            .select('id, points, reason, report_id, created_at')
            .eq('user_id', user_id)
            .order('created_at', desc=True)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch points history for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch points history")
    return result.data or []


def get_leaderboard(limit: int = 10, include_admins: bool = False) -> List[Dict[str, Any]]:
    function_name = 'get_admin_leaderboard' if include_admins else 'get_user_leaderboard'
    limit = max(1, min(int(limit), 100))
    try:
        supabase: Client = get_client()
        result = supabase.rpc(function_name, {'limit_count': limit}).execute()
    except Exception as e:
        logger.error(f"Failed to fetch leaderboard ({function_name}): {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch leaderboard")
    return result.data or []


def _requirement_met(achievement: Achievement, stats: Dict[str, Any]) -> bool:
    column = _STAT_COLUMNS[achievement.requirement_type]
    return (stats.get(column) or 0) >= achievement.requirement_count


def _forget_achievement(supabase: Client, user_id: str, achievement_id: str) -> None:
    """Undo a recorded achievement whose points could not be awarded, so the next check retries it."""
    try:
        supabase.table('user_achievements').delete().eq('user_id', user_id).eq('achievement_id', achievement_id).execute()
    except Exception as e:
        logger.error(f"Failed to roll back achievement {achievement_id} for {user_id}: {e}")


def check_achievements(user_id: str) -> List[Achievement]:
    """Record and reward every achievement the user now qualifies for."""
    try:
        supabase: Client = get_client()
        stats_result = supabase.table('user_stats').select('*').eq('user_id', user_id).limit(1).execute()
        earned_result = supabase.table('user_achievements').select('achievement_id').eq('user_id', user_id).execute()
    except Exception as e:
        logger.error(f"Failed to load achievement state for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to check achievements")

    stats = stats_result.data[0] if stats_result.data else {}
    earned_ids = {row['achievement_id'] for row in earned_result.data or []}

    newly_earned: List[Achievement] = []
    for achievement in ACHIEVEMENTS:
        if achievement.id in earned_ids or not _requirement_met(achievement, stats):
            continue
        try:
            supabase.table('user_achievements').insert({
                'user_id': user_id,
                'achievement_id': achievement.id,
                'earned_at': utcnow_iso(),
            }).execute()
        except Exception as e:
            logger.error(f"Failed to record achievement {achievement.id} for {user_id}: {e}")
            continue
        try:
            award_custom_points(user_id, achievement.points, f"ACHIEVEMENT_{achievement.id.upper()}")
        except HTTPException:
            _forget_achievement(supabase, user_id, achievement.id)
            continue
        newly_earned.append(achievement)

    if newly_earned:
        logger.info(f"User {user_id} earned achievements: {', '.join(a.id for a in newly_earned)}")
    return newly_earned


def get_user_achievements(user_id: str) -> List[Dict[str, Any]]:
    try:
        supabase: Client = get_client()
        result = (
            supabase
            .table('user_achievements')
            .select('achievement_id, earned_at')
            .eq('user_id', user_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to fetch achievements for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch achievements")

    achievements = []
    for row in result.data or []:
        achievement = ACHIEVEMENTS_BY_ID.get(row.get('achievement_id'))
        if achievement is None:
            continue
        achievements.append({**achievement.to_dict(), 'earned_at': row.get('earned_at')})
    return achievements
