import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import UserRole
from loomio.core.database import aget_db
from loomio.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from loomio.core.security import get_current_user
from loomio.models.community import UserCommunity
from loomio.models.user import User
from loomio.schemas.userSchema import UserUpdateRequest
from loomio.services import StatisticsService
from loomio.utils.check_community_role import administers_user, get_active_memberships, get_admin_community_ids
from loomio.utils.serializers import serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _require_self_or_admin(db: AsyncSession, current_user: User, user_id: int):
    if current_user.user_id != user_id and not await administers_user(db, current_user, user_id):
        raise AuthorizationError("Insufficient permissions")


@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    community_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """
    Platform admins see every account. Community admins see the members of
    the communities they administer; everyone else is refused.
    """
    conditions = []
    if current_user.role == UserRole.platform_admin:
        scope = [community_id] if community_id is not None else None
    else:
        admin_ids = await get_admin_community_ids(db, current_user.user_id)
        if not admin_ids:
            raise AuthorizationError("Only administrators can list users")
        if community_id is not None and community_id not in admin_ids:
            raise AuthorizationError("You are not an admin of this community")
        scope = [community_id] if community_id is not None else admin_ids

    if scope is not None:
        conditions.append(
            User.user_id.in_(
                select(UserCommunity.user_id).where(
                    UserCommunity.community_id.in_(scope),
                    UserCommunity.is_active == True,
                )
            )
        )
    if role:
        conditions.append(User.role == role)
    if is_active is not None:
        conditions.append(User.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))

    total = (await db.execute(select(func.count(User.user_id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.user_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "users": [serialize_user(u) for u in result.scalars().all()],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    user = await _get_user(db, user_id)
    await _require_self_or_admin(db, current_user, user_id)
    memberships = await get_active_memberships(db, user_id)
    return {"user": serialize_user(user, memberships)}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    user = await _get_user(db, user_id)
    is_platform_admin = current_user.role == UserRole.platform_admin
    if current_user.user_id != user_id and not is_platform_admin:
        raise AuthorizationError("Insufficient permissions")
    if (request.role is not None or request.is_active is not None) and not is_platform_admin:
        raise AuthorizationError("Only platform administrators can change role or account status")
    if request.is_active is False and user_id == current_user.user_id:
        raise ValidationError("You cannot deactivate your own account")

    if request.full_name is not None:
        user.full_name = request.full_name.strip()
    if request.role is not None:
        user.role = request.role
    if request.is_active is not None:
        user.is_active = request.is_active
    await db.commit()
    await db.refresh(user)

    logger.info(f"User {user_id} updated by user {current_user.user_id}")
    return {"message": "User updated successfully", "user": serialize_user(user)}


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Soft delete: the account is deactivated and can no longer sign in."""
    if current_user.role != UserRole.platform_admin:
        raise AuthorizationError("Only platform administrators can delete users")
    user = await _get_user(db, user_id)
    if user_id == current_user.user_id:
        raise ValidationError("You cannot deactivate your own account")

    user.is_active = False
    await db.commit()
    logger.info(f"User {user_id} deactivated by user {current_user.user_id}")
    return {"message": "User deactivated successfully"}


@router.get("/{user_id}/stats")
async def get_user_stats(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    user = await _get_user(db, user_id)
    await _require_self_or_admin(db, current_user, user_id)
    return await StatisticsService.user_stats(db, user)
