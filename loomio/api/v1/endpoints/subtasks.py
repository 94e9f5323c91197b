"""Subtasks: an ordered checklist under each task."""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loomio.constants.constants import SubtaskStatus
from loomio.core.database import aget_db
from loomio.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from loomio.core.security import get_current_user
from loomio.models.base import utcnow
from loomio.models.subtask import Subtask
from loomio.models.task import Task
from loomio.models.user import User
from loomio.schemas.subtaskSchema import SubtaskCreateRequest, SubtaskReorderRequest, SubtaskUpdateRequest
from loomio.services import TaskWorkflowService as workflow
from loomio.utils.check_community_role import get_membership, is_community_admin, require_membership
from loomio.utils.serializers import serialize_subtask

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/subtasks",
    tags=["subtasks"]
)


async def _load_subtasks(db: AsyncSession, task_id: int):
    result = await db.execute(
        select(Subtask)
        .options(selectinload(Subtask.assignee))
        .where(Subtask.task_id == task_id)
        .order_by(Subtask.position, Subtask.subtask_id)
    )
    return result.scalars().all()


async def _get_subtask(db: AsyncSession, subtask_id: int) -> Subtask:
    result = await db.execute(
        select(Subtask)
        .options(selectinload(Subtask.assignee), selectinload(Subtask.task))
        .where(Subtask.subtask_id == subtask_id)
        .execution_options(populate_existing=True)
    )
    subtask = result.scalar_one_or_none()
    if subtask is None:
        raise NotFoundError("Subtask not found")
    return subtask


async def _ensure_assignable(db: AsyncSession, task: Task, user_id):
    if user_id is not None and await get_membership(db, user_id, task.community_id) is None:
        raise ValidationError("Subtasks can only be assigned to members of the task's community")


def progress(subtasks) -> dict:
    """Completed count and rounded percentage; cancelled subtasks still count towards the total."""
    total = len(subtasks)
    completed = sum(1 for s in subtasks if s.status == SubtaskStatus.completed)
    return {
        "total": total,
        "completed": completed,
        "percentage": round(completed * 100 / total) if total else 0,
    }


@router.get("/task/{task_id}")
async def list_subtasks(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    await workflow.get_task_for_user(db, task_id, current_user)
    subtasks = await _load_subtasks(db, task_id)
    return {
        "subtasks": [serialize_subtask(s) for s in subtasks],
        "progress": progress(subtasks),
    }


@router.post("/task/{task_id}", status_code=201)
async def create_subtask(
    task_id: int,
    request: SubtaskCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Add a subtask to a task. Any member of the task's community may do this."""
    task = await workflow.get_task_for_user(db, task_id, current_user)
    await _ensure_assignable(db, task, request.assigned_to)

    position = request.position
    if position is None:
        highest = (
            await db.execute(select(func.max(Subtask.position)).where(Subtask.task_id == task_id))
        ).scalar_one()
        position = 0 if highest is None else highest + 1

    subtask = Subtask(
        task_id=task_id,
        title=request.title.strip(),
        description=request.description,
        assigned_to=request.assigned_to,
        created_by=current_user.user_id,
        position=position,
        status=SubtaskStatus.not_started,
    )
    db.add(subtask)
    await db.commit()

    subtask = await _get_subtask(db, subtask.subtask_id)
    logger.info(f"Subtask {subtask.subtask_id} added to task {task_id} by user {current_user.user_id}")
    return {"message": "Subtask created successfully", "subtask": serialize_subtask(subtask)}


@router.put("/task/{task_id}/reorder")
async def reorder_subtasks(
    task_id: int,
    request: SubtaskReorderRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Set positions from the order of `subtask_ids`; every id must belong to the task."""
    await workflow.get_task_for_user(db, task_id, current_user)
    subtasks = {s.subtask_id: s for s in await _load_subtasks(db, task_id)}

    unknown = [sid for sid in request.subtask_ids if sid not in subtasks]
    if unknown:
        raise ValidationError(f"Subtasks do not belong to this task: {unknown}")
    if len(set(request.subtask_ids)) != len(request.subtask_ids):
        raise ValidationError("subtask_ids must not contain duplicates")

    for index, subtask_id in enumerate(request.subtask_ids):
        subtasks[subtask_id].position = index
    await db.commit()

    subtasks = await _load_subtasks(db, task_id)
    return {
        "message": "Subtasks reordered successfully",
        "subtasks": [serialize_subtask(s) for s in subtasks],
    }


@router.put("/{subtask_id}")
async def update_subtask(
    subtask_id: int,
    request: SubtaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """
    Edit a subtask. Moving it to `completed` records who completed it and
    when; moving it out of `completed` clears both.
    """
    subtask = await _get_subtask(db, subtask_id)
    await require_membership(db, current_user, subtask.task.community_id, "Insufficient permissions")

    changes = request.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        await _ensure_assignable(db, subtask.task, changes["assigned_to"])
        subtask.assigned_to = changes["assigned_to"]
    if changes.get("title") is not None:
        subtask.title = changes["title"].strip()
    if "description" in changes:
        subtask.description = changes["description"]
    if changes.get("position") is not None:
        subtask.position = changes["position"]

    new_status = changes.get("status")
    if new_status is not None and new_status != subtask.status:
        if new_status == SubtaskStatus.completed:
            subtask.completed_at = utcnow()
            subtask.completed_by = current_user.user_id
        elif subtask.status == SubtaskStatus.completed:
            subtask.completed_at = None
            subtask.completed_by = None
        subtask.status = new_status

    await db.commit()
    subtask = await _get_subtask(db, subtask_id)
    return {"message": "Subtask updated successfully", "subtask": serialize_subtask(subtask)}


@router.delete("/{subtask_id}")
async def delete_subtask(
    subtask_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Only the subtask's creator or a community admin may delete it."""
    subtask = await _get_subtask(db, subtask_id)
    community_id = subtask.task.community_id
    if subtask.created_by != current_user.user_id and not await is_community_admin(db, current_user, community_id):
        raise AuthorizationError("Only the subtask creator or a community admin can delete this subtask")

    await db.delete(subtask)
    await db.commit()
    logger.info(f"Subtask {subtask_id} deleted by user {current_user.user_id}")
    return {"message": "Subtask deleted successfully", "subtask_id": subtask_id}
