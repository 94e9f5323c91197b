"""Points leaderboards: all-time totals and weekly/monthly contribution windows."""

from datetime import timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import AssignmentStatus, LeaderboardPeriod, UserRole
from loomio.core.database import aget_db
from loomio.core.security import get_current_user
from loomio.models.base import utcnow
from loomio.models.community import UserCommunity
from loomio.models.contribution import Contribution
from loomio.models.task import TaskAssignment
from loomio.models.user import User
from loomio.utils.check_community_role import get_user_community_ids, require_membership

router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])

PERIOD_WINDOWS = {
    LeaderboardPeriod.weekly: timedelta(days=7),
    LeaderboardPeriod.monthly: timedelta(days=30),
}


async def _resolve_community(db: AsyncSession, user: User, community_id: Optional[int]) -> Optional[int]:
    """Explicit community (membership required), else the caller's first one; platform admins may go platform-wide."""
    if community_id is not None:
        await require_membership(db, user, community_id, "You are not a member of this community")
        return community_id
    if user.role == UserRole.platform_admin:
        return None
    community_ids = await get_user_community_ids(db, user.user_id)
    return community_ids[0] if community_ids else None


async def build_rankings(db: AsyncSession, period: LeaderboardPeriod, community_id: Optional[int]) -> List[dict]:
    """Every eligible user, ranked by score (highest first, ties by name)."""
    query = select(User).where(User.is_active == True)
    if community_id is not None:
        query = query.where(
            User.user_id.in_(
                select(UserCommunity.user_id).where(
                    UserCommunity.community_id == community_id,
                    UserCommunity.is_active == True,
                )
            )
        )
    users = (await db.execute(query)).scalars().all()
    if not users:
        return []

    user_ids = [u.user_id for u in users]
    completed_rows = await db.execute(
        select(TaskAssignment.user_id, func.count(TaskAssignment.assignment_id))
        .where(TaskAssignment.user_id.in_(user_ids), TaskAssignment.status == AssignmentStatus.completed)
        .group_by(TaskAssignment.user_id)
    )
    completed = {row[0]: row[1] for row in completed_rows.all()}

    if period == LeaderboardPeriod.all_time:
        scores = {u.user_id: u.points for u in users}
    else:
        since = utcnow() - PERIOD_WINDOWS[period]
        conditions = [Contribution.user_id.in_(user_ids), Contribution.date >= since]
        if community_id is not None:
            conditions.append(Contribution.community_id == community_id)
        score_rows = await db.execute(
            select(Contribution.user_id, func.sum(Contribution.points))
            .where(*conditions)
            .group_by(Contribution.user_id)
        )
        sums = {row[0]: int(row[1] or 0) for row in score_rows.all()}
        scores = {uid: sums.get(uid, 0) for uid in user_ids}

    ordered = sorted(users, key=lambda u: (-scores[u.user_id], u.full_name.lower(), u.user_id))
    return [
        {
            "rank": position,
            "user_id": u.user_id,
            "full_name": u.full_name,
            "email": u.email,
            "points": scores[u.user_id],
            "tasks_completed": completed.get(u.user_id, 0),
        }
        for position, u in enumerate(ordered, start=1)
    ]


@router.get("")
async def get_leaderboard(
    period: LeaderboardPeriod = LeaderboardPeriod.all_time,
    community_id: Optional[int] = None,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    target = await _resolve_community(db, current_user, community_id)
    if target is None and current_user.role != UserRole.platform_admin:
        return {"leaderboard": [], "current_user_rank": None, "period": period.value, "community_id": None}

    rankings = await build_rankings(db, period, target)
    current_rank = next((r["rank"] for r in rankings if r["user_id"] == current_user.user_id), None)
    return {
        "leaderboard": rankings[:limit],
        "current_user_rank": current_rank,
        "period": period.value,
        "community_id": target,
    }


@router.get("/rank")
async def get_user_rank(
    period: LeaderboardPeriod = LeaderboardPeriod.all_time,
    community_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """The caller's position on the leaderboard."""
    target = await _resolve_community(db, current_user, community_id)
    if target is None and current_user.role != UserRole.platform_admin:
        return {"rank": None, "points": 0, "total_participants": 0, "period": period.value, "community_id": None}

    rankings = await build_rankings(db, period, target)
    entry = next((r for r in rankings if r["user_id"] == current_user.user_id), None)
    return {
        "rank": entry["rank"] if entry else None,
        "points": entry["points"] if entry else 0,
        "total_participants": len(rankings),
        "period": period.value,
        "community_id": target,
    }
