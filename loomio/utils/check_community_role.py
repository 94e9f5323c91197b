from typing import Optional
from sqlalchemy import select
from sqlalchemy.orm import aliased, selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import CommunityRole, UserRole
from loomio.core.exceptions import AuthorizationError
from loomio.models.community import UserCommunity
from loomio.models.user import User


async def get_membership(db: AsyncSession, user_id: int, community_id: int) -> Optional[UserCommunity]:
    """Active membership row of a user in a community, if any."""
    result = await db.execute(
        select(UserCommunity).where(
            UserCommunity.user_id == user_id,
            UserCommunity.community_id == community_id,
            UserCommunity.is_active == True,
        )
    )
    return result.scalar_one_or_none()


async def is_community_admin(db: AsyncSession, user: User, community_id: int) -> bool:
    """Platform admins administer every community; others need an admin membership."""
    if user.role == UserRole.platform_admin:
        return True
    membership = await get_membership(db, user.user_id, community_id)
    return membership is not None and membership.role == CommunityRole.community_admin


async def require_community_admin(db: AsyncSession, user: User, community_id: int, message: str = None):
    if not await is_community_admin(db, user, community_id):
        raise AuthorizationError(message or "Only community administrators can perform this action")


async def require_membership(db: AsyncSession, user: User, community_id: int, message: str = None):
    if user.role == UserRole.platform_admin:
        return
    if await get_membership(db, user.user_id, community_id) is None:
        raise AuthorizationError(message or "You must be a member of this community")


async def get_user_community_ids(db: AsyncSession, user_id: int) -> list[int]:
    result = await db.execute(
        select(UserCommunity.community_id).where(
            UserCommunity.user_id == user_id,
            UserCommunity.is_active == True,
        )
    )
    return [row[0] for row in result.all()]


async def get_active_memberships(db: AsyncSession, user_id: int) -> list[UserCommunity]:
    """Active memberships of a user in active communities, with the community loaded."""
    result = await db.execute(
        select(UserCommunity)
        .options(selectinload(UserCommunity.community))
        .where(UserCommunity.user_id == user_id, UserCommunity.is_active == True)
        .order_by(UserCommunity.joined_at)
    )
    return [m for m in result.scalars().all() if m.community and m.community.is_active]


async def get_admin_community_ids(db: AsyncSession, user_id: int) -> list[int]:
    result = await db.execute(
        select(UserCommunity.community_id).where(
            UserCommunity.user_id == user_id,
            UserCommunity.is_active == True,
            UserCommunity.role == CommunityRole.community_admin,
        )
    )
    return [row[0] for row in result.all()]


async def administers_user(db: AsyncSession, admin: User, user_id: int) -> bool:
    """Platform admins administer everyone; community admins administer members of their communities."""
    if admin.role == UserRole.platform_admin:
        return True
    admin_membership = aliased(UserCommunity)
    result = await db.execute(
        select(UserCommunity.community_id)
        .join(admin_membership, admin_membership.community_id == UserCommunity.community_id)
        .where(
            UserCommunity.user_id == user_id,
            UserCommunity.is_active == True,
            admin_membership.user_id == admin.user_id,
            admin_membership.is_active == True,
            admin_membership.role == CommunityRole.community_admin,
        )
        .limit(1)
    )
    return result.first() is not None
