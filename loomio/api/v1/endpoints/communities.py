"""Community management router: CRUD, join codes and memberships."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loomio.constants.constants import CommunityRole, UserRole
from loomio.core.database import aget_db
from loomio.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from loomio.core.security import get_current_user
from loomio.models.base import utcnow
from loomio.models.community import Community, UserCommunity
from loomio.models.event import Event
from loomio.models.task import Task
from loomio.models.user import User
from loomio.schemas.communitySchema import (
    CommunityCreateRequest,
    CommunityUpdateRequest,
    JoinCommunityRequest,
    MemberRoleUpdateRequest,
)
from loomio.services import NotificationService
from loomio.utils.check_community_role import get_membership, require_community_admin, require_membership
from loomio.utils.community_code import generate_unique_community_code
from loomio.utils.datetime_utils import isoformat
from loomio.utils.serializers import serialize_community

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/communities",
    tags=["communities"]
)


async def _get_community(db: AsyncSession, community_id: int, include_inactive: bool = False) -> Community:
    community = await db.get(Community, community_id)
    if community is None or (not include_inactive and not community.is_active):
        raise NotFoundError("Community not found")
    return community


def _require_owner(community: Community, user: User, action: str):
    if user.role != UserRole.platform_admin and community.created_by != user.user_id:
        raise AuthorizationError(f"Only the community creator or a platform admin can {action} this community")


async def _count(db: AsyncSession, column, *conditions) -> int:
    return (await db.execute(select(func.count(column)).where(*conditions))).scalar_one()


@router.get("")
async def list_communities(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """
    Platform admins see every community; everyone else sees the active
    communities they belong to, with their role in each.
    """
    conditions = []
    if current_user.role != UserRole.platform_admin:
        conditions.append(Community.is_active == True)
        conditions.append(
            Community.community_id.in_(
                select(UserCommunity.community_id).where(
                    UserCommunity.user_id == current_user.user_id,
                    UserCommunity.is_active == True,
                )
            )
        )
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(Community.name.ilike(pattern), Community.description.ilike(pattern)))

    total = await _count(db, Community.community_id, *conditions)
    result = await db.execute(
        select(Community)
        .where(*conditions)
        .order_by(Community.created_at.desc(), Community.community_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    communities = result.scalars().all()

    roles = {}
    if communities:
        membership_rows = await db.execute(
            select(UserCommunity.community_id, UserCommunity.role).where(
                UserCommunity.user_id == current_user.user_id,
                UserCommunity.is_active == True,
                UserCommunity.community_id.in_([c.community_id for c in communities]),
            )
        )
        roles = {row[0]: row[1].value for row in membership_rows.all()}

    return {
        "communities": [
            serialize_community(c, user_role=roles.get(c.community_id)) for c in communities
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.post("", status_code=201)
async def create_community(
    request: CommunityCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Create a community; the creator becomes its first community admin."""
    if current_user.role not in (UserRole.community_admin, UserRole.platform_admin):
        raise AuthorizationError("Only community admins can create communities")

    community = Community(
        name=request.name.strip(),
        description=request.description,
        community_code=await generate_unique_community_code(db),
        created_by=current_user.user_id,
        is_active=True,
    )
    db.add(community)
    await db.flush()

    db.add(UserCommunity(
        user_id=current_user.user_id,
        community_id=community.community_id,
        role=CommunityRole.community_admin,
        is_active=True,
    ))
    await db.commit()

    logger.info(f"Community {community.community_id} created by user {current_user.user_id}")
    return {
        "message": "Community created successfully",
        "community": serialize_community(community, user_role=CommunityRole.community_admin.value),
    }


@router.post("/join")
async def join_community(
    request: JoinCommunityRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Join a community by its six-character code (case-insensitive)."""
    code = request.community_code.strip().upper()
    result = await db.execute(
        select(Community).where(Community.community_code == code, Community.is_active == True)
    )
    community = result.scalar_one_or_none()
    if community is None:
        raise NotFoundError("Invalid community code")

    existing = await db.execute(
        select(UserCommunity).where(
            UserCommunity.user_id == current_user.user_id,
            UserCommunity.community_id == community.community_id,
        )
    )
    membership = existing.scalar_one_or_none()
    if membership is not None and membership.is_active:
        raise ValidationError("You are already a member of this community")

    if membership is not None:
        membership.is_active = True
        membership.role = CommunityRole.member
        membership.joined_at = utcnow()
    else:
        db.add(UserCommunity(
            user_id=current_user.user_id,
            community_id=community.community_id,
            role=CommunityRole.member,
            is_active=True,
        ))
    await db.commit()

    response = {
        "message": f"Successfully joined {community.name}",
        "community": serialize_community(community, user_role=CommunityRole.member.value),
    }
    await NotificationService.deliver(
        db, NotificationService.notify_member_joined(db, community, current_user), "member joined"
    )
    return response


@router.get("/{community_id}")
async def get_community(
    community_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    community = await _get_community(db, community_id)
    await require_membership(db, current_user, community_id, "You are not a member of this community")

    membership = await get_membership(db, current_user.user_id, community_id)
    member_count = await _count(
        db, UserCommunity.id, UserCommunity.community_id == community_id, UserCommunity.is_active == True
    )
    task_count = await _count(db, Task.task_id, Task.community_id == community_id)
    event_count = await _count(db, Event.event_id, Event.community_id == community_id)

    return {
        "community": serialize_community(
            community,
            user_role=membership.role.value if membership else None,
            member_count=member_count,
            task_count=task_count,
            event_count=event_count,
        )
    }


@router.put("/{community_id}")
async def update_community(
    community_id: int,
    request: CommunityUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    community = await _get_community(db, community_id)
    _require_owner(community, current_user, "update")

    if request.name is not None:
        community.name = request.name.strip()
    if request.description is not None:
        community.description = request.description
    await db.commit()
    await db.refresh(community)

    return {"message": "Community updated successfully", "community": serialize_community(community)}


@router.delete("/{community_id}")
async def deactivate_community(
    community_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Soft delete: the community is deactivated, its data kept."""
    community = await _get_community(db, community_id)
    _require_owner(community, current_user, "delete")

    community.is_active = False
    await db.commit()
    logger.info(f"Community {community_id} deactivated by user {current_user.user_id}")
    return {"message": "Community deleted successfully"}


@router.post("/{community_id}/leave")
async def leave_community(
    community_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    community = await _get_community(db, community_id)
    if community.created_by == current_user.user_id:
        raise ValidationError("Community creator cannot leave the community")

    membership = await get_membership(db, current_user.user_id, community_id)
    if membership is None:
        raise NotFoundError("You are not a member of this community")

    membership.is_active = False
    await db.commit()

    await NotificationService.deliver(
        db, NotificationService.notify_member_left(db, community, current_user), "member left"
    )
    return {"message": f"Successfully left {community.name}"}


@router.get("/{community_id}/members")
async def list_members(
    community_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    await _get_community(db, community_id)
    await require_membership(db, current_user, community_id, "You are not a member of this community")

    result = await db.execute(
        select(UserCommunity)
        .options(selectinload(UserCommunity.user))
        .where(UserCommunity.community_id == community_id, UserCommunity.is_active == True)
        .order_by(UserCommunity.joined_at)
    )
    members = [
        {
            "user_id": m.user.user_id,
            "full_name": m.user.full_name,
            "email": m.user.email,
            "points": m.user.points,
            "role": m.role.value,
            "joined_at": isoformat(m.joined_at),
        }
        for m in result.scalars().all()
        if m.user and m.user.is_active
    ]
    return {"members": members, "total": len(members)}


@router.put("/{community_id}/members/{user_id}/role")
async def update_member_role(
    community_id: int,
    user_id: int,
    request: MemberRoleUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    community = await _get_community(db, community_id)
    await require_community_admin(db, current_user, community_id, "Only community admins can change member roles")

    membership = await get_membership(db, user_id, community_id)
    if membership is None:
        raise NotFoundError("Member not found in this community")
    if community.created_by == user_id and request.role != CommunityRole.community_admin:
        raise ValidationError("The community creator must remain a community admin")

    membership.role = request.role
    await db.commit()
    logger.info(f"User {user_id} is now {request.role.value} in community {community_id}")
    return {
        "message": "Member role updated successfully",
        "member": {"user_id": user_id, "community_id": community_id, "role": request.role.value},
    }
