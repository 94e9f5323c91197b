"""Task tags: community-scoped labels that can be attached to tasks."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.core.database import aget_db
from loomio.core.exceptions import ConflictError, NotFoundError, ValidationError
from loomio.core.security import get_current_user
from loomio.models.tag import TaskTag
from loomio.models.user import User
from loomio.schemas.tagSchema import TagCreateRequest, TagUpdateRequest, TaskTagsRequest
from loomio.services import TaskWorkflowService as workflow
from loomio.utils.check_community_role import get_user_community_ids, require_community_admin, require_membership
from loomio.utils.serializers import serialize_tag, serialize_task

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tags",
    tags=["tags"]
)


async def _get_tag(db: AsyncSession, tag_id: int) -> TaskTag:
    tag = await db.get(TaskTag, tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


async def _ensure_unique_name(db: AsyncSession, community_id: int, name: str, exclude_id: Optional[int] = None):
    query = select(TaskTag.tag_id).where(
        TaskTag.community_id == community_id,
        func.lower(TaskTag.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.where(TaskTag.tag_id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("A tag with this name already exists in this community")


@router.get("")
async def list_tags(
    community_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Tags of a community; defaults to the caller's first community."""
    if community_id is None:
        community_ids = await get_user_community_ids(db, current_user.user_id)
        if not community_ids:
            raise ValidationError("Community ID is required")
        community_id = community_ids[0]
    await require_membership(db, current_user, community_id, "You are not a member of this community")

    result = await db.execute(
        select(TaskTag).where(TaskTag.community_id == community_id).order_by(TaskTag.name)
    )
    tags = result.scalars().all()
    return {"tags": [serialize_tag(t) for t in tags], "total": len(tags)}


@router.post("", status_code=201)
async def create_tag(
    request: TagCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Any community member can create tags; names are unique per community, ignoring case."""
    await require_membership(db, current_user, request.community_id, "You are not a member of this community")
    name = request.name.strip()
    await _ensure_unique_name(db, request.community_id, name)

    tag = TaskTag(
        name=name,
        color=request.color,
        community_id=request.community_id,
        created_by=current_user.user_id,
    )
    db.add(tag)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A tag with this name already exists in this community")

    logger.info(f"Tag {tag.tag_id} '{tag.name}' created in community {tag.community_id}")
    return {"message": "Tag created successfully", "tag": serialize_tag(tag)}


@router.put("/{tag_id}")
async def update_tag(
    tag_id: int,
    request: TagUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    tag = await _get_tag(db, tag_id)
    await require_community_admin(db, current_user, tag.community_id, "Only community admins can edit tags")

    if request.name is not None:
        name = request.name.strip()
        await _ensure_unique_name(db, tag.community_id, name, exclude_id=tag_id)
        tag.name = name
    if request.color is not None:
        tag.color = request.color
    await db.commit()

    return {"message": "Tag updated successfully", "tag": serialize_tag(tag)}


@router.delete("/{tag_id}")
async def delete_tag(
    tag_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Delete a tag; it is detached from every task carrying it."""
    tag = await _get_tag(db, tag_id)
    await require_community_admin(db, current_user, tag.community_id, "Only community admins can delete tags")

    await db.delete(tag)
    await db.commit()
    logger.info(f"Tag {tag_id} deleted by user {current_user.user_id}")
    return {"message": "Tag deleted successfully", "tag_id": tag_id}


@router.post("/task/{task_id}")
async def set_task_tags(
    task_id: int,
    request: TaskTagsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Replace a task's tags. Every tag must belong to the task's community."""
    task = await workflow.get_task_for_user(db, task_id, current_user)

    tag_ids = list(dict.fromkeys(request.tag_ids))
    tags = []
    if tag_ids:
        result = await db.execute(
            select(TaskTag).where(TaskTag.tag_id.in_(tag_ids), TaskTag.community_id == task.community_id)
        )
        tags = result.scalars().all()
        found = {t.tag_id for t in tags}
        missing = [tid for tid in tag_ids if tid not in found]
        if missing:
            raise ValidationError(f"Tags not found in this community: {missing}")

    task.tags = list(tags)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    return {"message": "Tags assigned successfully", "task": serialize_task(task)}


@router.get("/{tag_id}/tasks")
async def list_tasks_by_tag(
    tag_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    tag = await _get_tag(db, tag_id)
    await require_membership(db, current_user, tag.community_id, "You are not a member of this community")

    tasks, total = await workflow.list_tasks(
        db, current_user, community_id=tag.community_id, tag_id=tag_id, page=page, limit=limit
    )
    return {
        "tag": serialize_tag(tag),
        "tasks": [serialize_task(t) for t in tasks],
        "total": total,
    }
