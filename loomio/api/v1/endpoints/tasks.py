"""Task management router: CRUD plus the assignment, submission and review workflow."""

import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import AssignmentStatus, ReviewAction, TaskPriority, TaskStatus
from loomio.core.database import aget_db
from loomio.core.security import get_current_user
from loomio.models.user import User
from loomio.schemas.taskSchema import (
    AssignmentStatusUpdateRequest,
    AssignUsersRequest,
    TaskCreateRequest,
    TaskReviewRequest,
    TaskSubmitRequest,
    TaskUpdateRequest,
)
from loomio.services import NotificationService
from loomio.services import TaskWorkflowService as workflow
from loomio.utils.serializers import serialize_assignment, serialize_task

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"]
)


def _community_name(task) -> str:
    return task.community.name if task.community else "Community"


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


@router.post("", status_code=201)
async def create_task(
    task_data: TaskCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """
    Create a new task in a community.
    Only community admins of that community (or platform admins) can create tasks.
    Users listed in `assignee_ids` are assigned straight away.
    """
    task = await workflow.create_task(
        db,
        current_user,
        community_id=task_data.community_id,
        title=task_data.title,
        description=task_data.description,
        deadline=task_data.deadline,
        priority=task_data.priority,
        task_type=task_data.task_type,
        max_assignees=task_data.max_assignees,
        points=task_data.points,
        estimated_hours=task_data.estimated_hours,
        assignee_ids=task_data.assignee_ids,
    )
    await db.commit()

    task = await workflow.get_task(db, task.task_id)
    response = {"message": "Task created successfully", "task": serialize_task(task)}
    assignee_ids = [a.user_id for a in workflow.active_assignments(task)]

    await NotificationService.deliver(
        db,
        NotificationService.notify_task_created(db, task, current_user, _community_name(task)),
        "task created",
    )
    if assignee_ids:
        await NotificationService.deliver(
            db,
            NotificationService.notify_task_assigned(db, task, assignee_ids, current_user, _community_name(task)),
            "task assigned",
        )
    return response


@router.get("")
async def list_tasks(
    community_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    assigned_to: Optional[int] = None,
    tag_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """List tasks from the caller's communities (all communities for platform admins)."""
    tasks, total = await workflow.list_tasks(
        db,
        current_user,
        community_id=community_id,
        status=status,
        priority=priority,
        search=search,
        start_date=start_date,
        end_date=end_date,
        assigned_to=assigned_to,
        tag_id=tag_id,
        page=page,
        limit=limit,
    )
    return {
        "tasks": [serialize_task(task) for task in tasks],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/user")
async def get_user_tasks(
    status: Optional[AssignmentStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """The caller's own assignments, each with its task."""
    assignments, total = await workflow.list_user_assignments(
        db, current_user.user_id, status=status, page=page, limit=limit
    )
    items = []
    for assignment in assignments:
        item = serialize_assignment(assignment, include_user=False)
        item["task"] = serialize_task(assignment.task, include_assignments=False)
        items.append(item)
    return {"assignments": items, "pagination": _pagination(page, limit, total)}


@router.get("/{task_id}")
async def get_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    task = await workflow.get_task_for_user(db, task_id, current_user)
    return {"task": serialize_task(task)}


@router.put("/{task_id}")
async def update_task(
    task_id: int,
    task_data: TaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Update task details. Assignees are notified of the change."""
    await workflow.update_task(db, task_id, current_user, task_data.model_dump(exclude_unset=True))
    await db.commit()

    task = await workflow.get_task(db, task_id)
    response = {"message": "Task updated successfully", "task": serialize_task(task)}
    assignee_ids = [a.user_id for a in workflow.active_assignments(task) if a.user_id != current_user.user_id]
    if assignee_ids:
        await NotificationService.deliver(
            db,
            NotificationService.notify_task_updated(db, task, assignee_ids, current_user, _community_name(task)),
            "task updated",
        )
    return response


async def _delete_task(task_id: int, current_user: User, db: AsyncSession) -> dict:
    snapshot = await workflow.delete_task(db, task_id, current_user)
    await db.commit()

    assignee_ids = [uid for uid in snapshot["assignee_ids"] if uid != current_user.user_id]
    if assignee_ids:
        await NotificationService.deliver(
            db,
            NotificationService.notify_task_deleted(
                db,
                snapshot["title"],
                assignee_ids,
                current_user,
                snapshot["community_id"],
                snapshot["community_name"],
            ),
            "task deleted",
        )
    return {"message": "Task deleted successfully", "task_id": task_id}


@router.delete("/{task_id}/delete")
async def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Hard delete a task and all of its assignments (admin only)."""
    return await _delete_task(task_id, current_user, db)


@router.delete("/{task_id}/revoke")
async def revoke_assignment(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Withdraw the caller's own assignment. Not allowed once submitted or completed."""
    await workflow.revoke(db, task_id, current_user)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    return {"message": "Task assignment revoked successfully", "task": serialize_task(task)}


@router.delete("/{task_id}")
async def delete_task_by_id(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    return await _delete_task(task_id, current_user, db)


@router.post("/{task_id}/self-assign", status_code=201)
async def self_assign(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Assign the caller to an open task, subject to the task's capacity."""
    await workflow.self_assign(db, task_id, current_user)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    assignment = workflow.find_assignment(task, current_user.user_id)
    response = {
        "message": "Successfully self-assigned to task",
        "assignment": serialize_assignment(assignment),
        "task": serialize_task(task),
    }
    await NotificationService.deliver(
        db,
        NotificationService.notify_task_self_assigned(db, task, current_user, _community_name(task)),
        "task self-assigned",
    )
    return response


@router.post("/{task_id}/assign-users")
async def assign_users(
    task_id: int,
    request: AssignUsersRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Assign community members to a task (admin only)."""
    assignments = await workflow.assign_users(db, task_id, request.user_ids, current_user)
    assigned_ids = [a.user_id for a in assignments]
    await db.commit()

    task = await workflow.get_task(db, task_id)
    response = {
        "message": f"Successfully assigned {len(assigned_ids)} users to task",
        "assigned_user_ids": assigned_ids,
        "task": serialize_task(task),
    }
    recipients = [uid for uid in assigned_ids if uid != current_user.user_id]
    if recipients:
        await NotificationService.deliver(
            db,
            NotificationService.notify_task_assigned(db, task, recipients, current_user, _community_name(task)),
            "task assigned",
        )
    return response


@router.put("/{task_id}/status")
async def update_assignment_status(
    task_id: int,
    request: AssignmentStatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Move the caller's own assignment to `accepted` or `in_progress`."""
    await workflow.update_status(db, task_id, current_user, request.status, request.notes)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    assignment = workflow.find_assignment(task, current_user.user_id)
    return {
        "message": "Task status updated successfully",
        "assignment": serialize_assignment(assignment),
        "task": serialize_task(task),
    }


@router.api_route("/{task_id}/submit", methods=["POST", "PUT"])
async def submit_task(
    task_id: int,
    request: Optional[TaskSubmitRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Submit completion evidence. Refused once the task's deadline has passed."""
    request = request or TaskSubmitRequest()
    await workflow.submit(db, task_id, current_user, request.submission_link, request.submission_notes)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    assignment = workflow.find_assignment(task, current_user.user_id)
    response = {
        "message": "Task submitted successfully",
        "assignment": serialize_assignment(assignment),
        "task": serialize_task(task),
    }
    await NotificationService.deliver(
        db,
        NotificationService.notify_task_submitted(db, task, current_user, _community_name(task)),
        "task submitted",
    )
    return response


async def _notify_review(db: AsyncSession, task, user_ids, action: ReviewAction, review_notes, reviewer: User):
    if action == ReviewAction.approve:
        coroutine = NotificationService.notify_task_approved(db, task, user_ids, reviewer, _community_name(task))
    else:
        coroutine = NotificationService.notify_task_rejected(
            db, task, user_ids, reviewer, review_notes, _community_name(task)
        )
    await NotificationService.deliver(db, coroutine, f"task {action.value}")


@router.api_route("/{task_id}/review", methods=["POST", "PUT"])
async def review_task(
    task_id: int,
    request: TaskReviewRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Approve or reject every submitted assignment of the task at once (admin only)."""
    reviewed, awarded = await workflow.review_task(db, task_id, request.action, request.review_notes, current_user)
    reviewed_ids = [a.user_id for a in reviewed]
    await db.commit()

    task = await workflow.get_task(db, task_id)
    verb = "approved" if request.action == ReviewAction.approve else "rejected"
    response = {
        "message": f"Task {verb} successfully",
        "reviewed_user_ids": reviewed_ids,
        "points_awarded": awarded,
        "task": serialize_task(task),
    }
    await _notify_review(db, task, reviewed_ids, request.action, request.review_notes, current_user)
    return response


@router.post("/{task_id}/review/{user_id}")
async def review_assignment(
    task_id: int,
    user_id: int,
    request: TaskReviewRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Review a single assignee's submission on a (usually group) task."""
    await workflow.review_assignment(db, task_id, user_id, request.action, request.review_notes, current_user)
    await db.commit()

    task = await workflow.get_task(db, task_id)
    assignment = workflow.find_assignment(task, user_id)
    verb = "approved" if request.action == ReviewAction.approve else "rejected"
    response = {
        "message": f"Submission {verb} successfully",
        "points_awarded": task.points if request.action == ReviewAction.approve else 0,
        "assignment": serialize_assignment(assignment),
        "task": serialize_task(task),
    }
    await _notify_review(db, task, [user_id], request.action, request.review_notes, current_user)
    return response
