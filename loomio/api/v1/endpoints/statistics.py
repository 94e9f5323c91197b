"""Personal statistics and activity timelines."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import UserRole
from loomio.core.database import aget_db
from loomio.core.exceptions import AuthorizationError, NotFoundError
from loomio.core.security import get_current_user
from loomio.models.user import User
from loomio.services import StatisticsService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/statistics",
    tags=["statistics"]
)


async def _target_user(db: AsyncSession, current_user: User, user_id: Optional[int]) -> User:
    if user_id is None or user_id == current_user.user_id:
        return current_user
    if current_user.role != UserRole.platform_admin:
        raise AuthorizationError("You can only view your own statistics")
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _statistics(db, current_user, user_id, period, community_id):
    user = await _target_user(db, current_user, user_id)
    return await StatisticsService.user_statistics(db, user, days=period, community_id=community_id)


@router.get("")
async def get_my_statistics(
    period: int = Query(30, ge=1, le=365),
    community_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """The caller's statistics over the last `period` days."""
    return await _statistics(db, current_user, None, period, community_id)


@router.get("/{user_id}")
async def get_user_statistics(
    user_id: int,
    period: int = Query(30, ge=1, le=365),
    community_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    return await _statistics(db, current_user, user_id, period, community_id)


@router.get("/{user_id}/activity")
async def get_user_activity(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Contribution timeline, newest first."""
    user = await _target_user(db, current_user, user_id)
    contributions, total = await StatisticsService.recent_contributions(db, user.user_id, limit=limit, offset=offset)
    return {
        "activities": [StatisticsService.serialize_contribution(c) for c in contributions],
        "total": total,
    }
