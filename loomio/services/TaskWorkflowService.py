"""
Task assignment, submission and review workflow.

Per-assignment lifecycle:

    assigned -> accepted -> in_progress -> submitted -> completed
                                              |
                                              +-> rejected -> (in_progress | submitted)

Any non-terminal assignment may be cancelled (self-revoke). A cancelled
assignment is reactivated when the same user is assigned again. The task's
own `status` is an aggregate recomputed from its active assignments after
every mutation.

All functions run inside the caller's session; the caller commits.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loomio.constants.constants import (
    ASSIGNMENT_TRANSITIONS,
    MAX_GROUP_ASSIGNEES,
    OPEN_TASK_STATUSES,
    SELF_SERVICE_STATUSES,
    AssignmentStatus,
    ContributionType,
    ReviewAction,
    TaskPriority,
    TaskStatus,
    TaskType,
    UserRole,
)
from loomio.core.config import settings
from loomio.core.exceptions import (
    CapacityExceeded,
    DeadlinePassed,
    InvalidState,
    NotFoundError,
    ValidationError,
)
from loomio.models.base import utcnow
from loomio.models.community import Community, UserCommunity
from loomio.models.contribution import Contribution
from loomio.models.tag import TaskTag
from loomio.models.task import Task, TaskAssignment
from loomio.models.user import User
from loomio.utils.check_community_role import (
    get_user_community_ids,
    require_community_admin,
    require_membership,
)
from loomio.utils.datetime_utils import as_utc

logger = logging.getLogger(__name__)

SUBMITTABLE_STATUSES = (AssignmentStatus.accepted, AssignmentStatus.in_progress, AssignmentStatus.rejected)
UNREVOCABLE_STATUSES = (AssignmentStatus.submitted, AssignmentStatus.completed)
REVIEW_FIELDS = ["status", "reviewed_at", "reviewed_by", "review_notes", "completed_at", "updated_at"]


# ------------------------------
# State helpers
# ------------------------------
def ensure_transition(current: AssignmentStatus, target: AssignmentStatus) -> None:
    """Raise InvalidState unless `current -> target` is in the transition table."""
    if target not in ASSIGNMENT_TRANSITIONS.get(current, set()):
        raise InvalidState(f"Cannot move assignment from '{current.value}' to '{target.value}'")


def active_assignments(task: Task) -> List[TaskAssignment]:
    return [a for a in task.assignments if a.status != AssignmentStatus.cancelled]


def task_capacity(task: Task) -> int:
    return 1 if task.task_type == TaskType.individual else task.max_assignees


def derive_task_status(assignments: Iterable[TaskAssignment]) -> TaskStatus:
    """Aggregate task status from its assignments; cancelled ones are ignored."""
    statuses = {a.status for a in assignments if a.status != AssignmentStatus.cancelled}
    if not statuses:
        return TaskStatus.not_started
    if statuses == {AssignmentStatus.completed}:
        return TaskStatus.completed
    if statuses <= {AssignmentStatus.submitted, AssignmentStatus.completed}:
        return TaskStatus.submitted
    if statuses <= {AssignmentStatus.completed, AssignmentStatus.rejected}:
        return TaskStatus.rejected
    return TaskStatus.in_progress


def refresh_task_status(task: Task, reviewer: Optional[User] = None, review_notes: Optional[str] = None) -> TaskStatus:
    if task.status == TaskStatus.cancelled:
        return task.status

    old_status = task.status
    task.status = derive_task_status(task.assignments)

    if reviewer is not None and task.status in (TaskStatus.completed, TaskStatus.rejected):
        task.reviewed_by = reviewer.user_id
        task.reviewed_at = utcnow()
        task.review_notes = review_notes
    task.completion_date = (task.completion_date or utcnow()) if task.status == TaskStatus.completed else None

    if old_status != task.status:
        logger.info(f"Task {task.task_id} status {old_status.value} -> {task.status.value}")
    return task.status


def find_assignment(task: Task, user_id: int) -> Optional[TaskAssignment]:
    for assignment in task.assignments:
        if assignment.user_id == user_id:
            return assignment
    return None


def require_active_assignment(task: Task, user_id: int, message: str = "Task assignment not found") -> TaskAssignment:
    assignment = find_assignment(task, user_id)
    if assignment is None or assignment.status == AssignmentStatus.cancelled:
        raise NotFoundError(message)
    return assignment


def ensure_open_for_assignment(task: Task) -> None:
    if task.status not in OPEN_TASK_STATUSES[task.task_type.value]:
        if task.task_type == TaskType.group:
            raise InvalidState("Task is no longer available for assignment")
        raise InvalidState("Task is not available for assignment")


def ensure_not_cancelled(task: Task) -> None:
    if task.status == TaskStatus.cancelled:
        raise InvalidState("Task has been cancelled")


def ensure_capacity(task: Task, requested: int) -> None:
    capacity = task_capacity(task)
    taken = len(active_assignments(task))
    if taken + requested <= capacity:
        return
    if task.task_type == TaskType.individual:
        raise CapacityExceeded("This individual task is already assigned to someone")
    if requested == 1:
        raise CapacityExceeded("Maximum number of assignees reached for this task")
    raise CapacityExceeded(
        f"Cannot assign {requested} users. Only {max(capacity - taken, 0)} slots available."
    )


def activate_assignment(task: Task, user_id: int) -> TaskAssignment:
    """Create a fresh assignment, or reactivate the user's cancelled one."""
    now = utcnow()
    assignment = find_assignment(task, user_id)
    if assignment is None:
        assignment = TaskAssignment(user_id=user_id, status=AssignmentStatus.assigned, assigned_at=now)
        task.assignments.append(assignment)
        return assignment

    ensure_transition(assignment.status, AssignmentStatus.assigned)
    assignment.status = AssignmentStatus.assigned
    assignment.assigned_at = now
    for field in (
        "accepted_at", "started_at", "notes", "submission_link", "submission_notes",
        "submitted_at", "review_notes", "reviewed_at", "reviewed_by", "completed_at",
    ):
        setattr(assignment, field, None)
    return assignment


# ------------------------------
# Loading
# ------------------------------
def _task_query():
    return select(Task).options(
        selectinload(Task.assignments).selectinload(TaskAssignment.user),
        selectinload(Task.community),
        selectinload(Task.creator),
        selectinload(Task.reviewer),
        selectinload(Task.tags),
    )


async def get_task(db: AsyncSession, task_id: int, *, lock: bool = False) -> Task:
    """
    Load a task with its assignments, community and creator.

    With `lock=True` the task row is selected FOR UPDATE so that the
    capacity check and the insert that follows are serialized against
    concurrent requests touching the same task. On SQLite the same
    guarantee comes from the session manager opening every transaction
    with BEGIN IMMEDIATE.
    """
    query = _task_query().where(Task.task_id == task_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found")
    return task


async def get_task_for_user(db: AsyncSession, task_id: int, user: User) -> Task:
    task = await get_task(db, task_id)
    await require_membership(db, user, task.community_id, "Insufficient permissions")
    return task


async def list_tasks(
    db: AsyncSession,
    user: User,
    *,
    community_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    assigned_to: Optional[int] = None,
    tag_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[Sequence[Task], int]:
    """Tasks visible to `user`, newest first, with the total count before paging."""
    conditions = []

    if user.role != UserRole.platform_admin:
        community_ids = await get_user_community_ids(db, user.user_id)
        if not community_ids:
            return [], 0
        if community_id is not None:
            if community_id not in community_ids:
                return [], 0
            conditions.append(Task.community_id == community_id)
        else:
            conditions.append(Task.community_id.in_(community_ids))
    elif community_id is not None:
        conditions.append(Task.community_id == community_id)

    if status:
        conditions.append(Task.status == status)
    if priority:
        conditions.append(Task.priority == priority)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
    if start_date:
        conditions.append(Task.deadline >= as_utc(start_date))
    if end_date:
        conditions.append(Task.deadline <= as_utc(end_date))
    if assigned_to:
        conditions.append(
            Task.task_id.in_(
                select(TaskAssignment.task_id).where(
                    TaskAssignment.user_id == assigned_to,
                    TaskAssignment.status != AssignmentStatus.cancelled,
                )
            )
        )
    if tag_id:
        conditions.append(Task.tags.any(TaskTag.tag_id == tag_id))

    total = (await db.execute(select(func.count(Task.task_id)).where(*conditions))).scalar_one()
    result = await db.execute(
        _task_query()
        .where(*conditions)
        .order_by(Task.created_at.desc(), Task.task_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return result.scalars().all(), total


async def list_user_assignments(
    db: AsyncSession,
    user_id: int,
    *,
    status: Optional[AssignmentStatus] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[Sequence[TaskAssignment], int]:
    conditions = [TaskAssignment.user_id == user_id]
    if status:
        conditions.append(TaskAssignment.status == status)
    else:
        conditions.append(TaskAssignment.status != AssignmentStatus.cancelled)

    total = (await db.execute(select(func.count(TaskAssignment.assignment_id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(TaskAssignment)
        .options(
            selectinload(TaskAssignment.user),
            selectinload(TaskAssignment.task).selectinload(Task.community),
            selectinload(TaskAssignment.task).selectinload(Task.creator),
            selectinload(TaskAssignment.task).selectinload(Task.tags),
        )
        .where(*conditions)
        .order_by(TaskAssignment.assigned_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return result.scalars().all(), total


# ------------------------------
# Task CRUD
# ------------------------------
async def create_task(
    db: AsyncSession,
    creator: User,
    *,
    community_id: int,
    title: str,
    description: Optional[str] = None,
    deadline: Optional[datetime] = None,
    priority: TaskPriority = TaskPriority.medium,
    task_type: TaskType = TaskType.individual,
    max_assignees: int = 1,
    points: Optional[int] = None,
    estimated_hours: Optional[int] = None,
    assignee_ids: Sequence[int] = (),
) -> Task:
    community = await db.get(Community, community_id)
    if community is None or not community.is_active:
        raise NotFoundError("Community not found")
    await require_community_admin(db, creator, community_id, "Only community administrators can create tasks")

    if task_type == TaskType.individual:
        max_assignees = 1
    elif not 1 <= max_assignees <= MAX_GROUP_ASSIGNEES:
        raise ValidationError(f"max_assignees must be between 1 and {MAX_GROUP_ASSIGNEES}")

    task = Task(
        title=title,
        description=description,
        deadline=as_utc(deadline),
        priority=priority,
        task_type=task_type,
        max_assignees=max_assignees,
        points=settings.TASK_COMPLETION_POINTS if points is None else points,
        estimated_hours=estimated_hours,
        community_id=community_id,
        creator_id=creator.user_id,
        status=TaskStatus.not_started,
        assignments=[],
    )
    db.add(task)
    await db.flush()
    logger.info(f"Task {task.task_id} created in community {community_id} by user {creator.user_id}")

    if assignee_ids:
        await assign_users(db, task.task_id, assignee_ids, creator)
    return task


async def update_task(db: AsyncSession, task_id: int, editor: User, changes: dict) -> Task:
    """Apply admin edits. Status may only be set to `cancelled`; otherwise it follows the assignments."""
    task = await get_task(db, task_id, lock=True)
    await require_community_admin(db, editor, task.community_id, "Only community administrators can update tasks")

    if "status" in changes and changes["status"] is not None:
        if changes["status"] != TaskStatus.cancelled:
            raise ValidationError("Only cancelling a task is allowed; other statuses follow the assignments")
        task.status = TaskStatus.cancelled

    if "max_assignees" in changes and changes["max_assignees"] is not None:
        new_max = changes["max_assignees"]
        if task.task_type == TaskType.individual and new_max != 1:
            raise ValidationError("Individual tasks always have exactly one assignee slot")
        if new_max < len(active_assignments(task)):
            raise ValidationError("max_assignees cannot be lower than the number of current assignees")
        task.max_assignees = new_max

    for field in ("title", "description", "priority", "points", "estimated_hours"):
        if field in changes and changes[field] is not None:
            setattr(task, field, changes[field])
    if "deadline" in changes:
        task.deadline = as_utc(changes["deadline"])

    await db.flush()
    return task


async def delete_task(db: AsyncSession, task_id: int, admin: User) -> dict:
    """Hard delete a task and its assignments. Returns what notifications need afterwards."""
    task = await get_task(db, task_id, lock=True)
    await require_community_admin(db, admin, task.community_id, "Only community administrators can delete tasks")

    snapshot = {
        "task_id": task.task_id,
        "title": task.title,
        "community_id": task.community_id,
        "community_name": task.community.name if task.community else "Community",
        "assignee_ids": [a.user_id for a in active_assignments(task)],
    }
    await db.delete(task)
    await db.flush()
    logger.info(f"Task {task_id} deleted by user {admin.user_id}")
    return snapshot


# ------------------------------
# Assignment
# ------------------------------
async def self_assign(db: AsyncSession, task_id: int, user: User) -> TaskAssignment:
    task = await get_task(db, task_id, lock=True)
    await require_membership(
        db, user, task.community_id, "You must be a member of this community to self-assign tasks"
    )

    existing = find_assignment(task, user.user_id)
    if existing is not None and existing.status != AssignmentStatus.cancelled:
        raise InvalidState("You are already assigned to this task")

    ensure_open_for_assignment(task)
    ensure_capacity(task, 1)

    assignment = activate_assignment(task, user.user_id)
    refresh_task_status(task)
    try:
        await db.flush()
    except IntegrityError:
        raise InvalidState("You are already assigned to this task")

    logger.info(f"User {user.user_id} self-assigned to task {task_id}")
    return assignment


async def assign_users(db: AsyncSession, task_id: int, user_ids: Sequence[int], admin: User) -> List[TaskAssignment]:
    """Admin assignment. Users already actively assigned are skipped; the rest must fit."""
    if not user_ids:
        raise ValidationError("User IDs array is required")

    task = await get_task(db, task_id, lock=True)
    await require_community_admin(db, admin, task.community_id, "Only community administrators can assign tasks")
    ensure_open_for_assignment(task)

    requested = list(dict.fromkeys(user_ids))
    result = await db.execute(
        select(UserCommunity.user_id).where(
            UserCommunity.community_id == task.community_id,
            UserCommunity.is_active == True,
            UserCommunity.user_id.in_(requested),
        )
    )
    members = {row[0] for row in result.all()}
    outsiders = [uid for uid in requested if uid not in members]
    if outsiders:
        raise ValidationError(f"Users are not members of this community: {outsiders}")

    to_assign = []
    for uid in requested:
        current = find_assignment(task, uid)
        if current is None or current.status == AssignmentStatus.cancelled:
            to_assign.append(uid)

    if not to_assign:
        return []
    ensure_capacity(task, len(to_assign))

    assignments = [activate_assignment(task, uid) for uid in to_assign]
    refresh_task_status(task)
    try:
        await db.flush()
    except IntegrityError:
        raise InvalidState("One or more users are already assigned to this task")

    logger.info(f"User {admin.user_id} assigned users {to_assign} to task {task_id}")
    return assignments


async def update_status(
    db: AsyncSession,
    task_id: int,
    user: User,
    status: AssignmentStatus,
    notes: Optional[str] = None,
) -> TaskAssignment:
    """Move the caller's own assignment to `accepted` or `in_progress`."""
    if status not in SELF_SERVICE_STATUSES:
        raise ValidationError("Status must be one of: accepted, in_progress")

    task = await get_task(db, task_id, lock=True)
    assignment = require_active_assignment(task, user.user_id)
    ensure_not_cancelled(task)
    ensure_transition(assignment.status, status)

    now = utcnow()
    assignment.status = status
    if status == AssignmentStatus.accepted:
        assignment.accepted_at = now
    elif status == AssignmentStatus.in_progress:
        assignment.started_at = now
    if notes is not None:
        assignment.notes = notes

    refresh_task_status(task)
    await db.flush()
    logger.info(f"User {user.user_id} moved assignment on task {task_id} to {status.value}")
    return assignment


async def accept(db: AsyncSession, task_id: int, user: User) -> TaskAssignment:
    return await update_status(db, task_id, user, AssignmentStatus.accepted)


async def start(db: AsyncSession, task_id: int, user: User) -> TaskAssignment:
    return await update_status(db, task_id, user, AssignmentStatus.in_progress)


async def submit(
    db: AsyncSession,
    task_id: int,
    user: User,
    submission_link: Optional[str] = None,
    submission_notes: Optional[str] = None,
) -> TaskAssignment:
    task = await get_task(db, task_id, lock=True)
    assignment = require_active_assignment(task, user.user_id)

    deadline = as_utc(task.deadline)
    if deadline is not None and utcnow() > deadline:
        raise DeadlinePassed()

    ensure_not_cancelled(task)
    if assignment.status not in SUBMITTABLE_STATUSES:
        raise InvalidState("Task cannot be submitted in current status")
    ensure_transition(assignment.status, AssignmentStatus.submitted)

    assignment.status = AssignmentStatus.submitted
    assignment.submission_link = submission_link or None
    assignment.submission_notes = submission_notes or None
    assignment.submitted_at = utcnow()
    assignment.review_notes = None
    assignment.reviewed_at = None
    assignment.reviewed_by = None

    refresh_task_status(task)
    await db.flush()
    logger.info(f"User {user.user_id} submitted task {task_id}")
    return assignment


# ------------------------------
# Review
# ------------------------------
async def _apply_review(
    db: AsyncSession,
    task: Task,
    assignment: TaskAssignment,
    action: ReviewAction,
    review_notes: Optional[str],
    reviewer: User,
) -> int:
    """
    Move one submitted assignment to completed/rejected and credit points on approval.

    The status change is a conditional UPDATE on `status = 'submitted'`, so of
    two concurrent approvals only one matches a row and only that one awards
    points. Returns the points awarded.
    """
    approve = action == ReviewAction.approve
    now = utcnow()
    target = AssignmentStatus.completed if approve else AssignmentStatus.rejected
    ensure_transition(assignment.status, target)

    result = await db.execute(
        update(TaskAssignment)
        .where(
            TaskAssignment.assignment_id == assignment.assignment_id,
            TaskAssignment.status == AssignmentStatus.submitted,
        )
        .values(
            status=target,
            reviewed_at=now,
            reviewed_by=reviewer.user_id,
            review_notes=review_notes,
            completed_at=now if approve else None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidState("Assignment is not in submitted status")
    await db.refresh(assignment, REVIEW_FIELDS)

    if not approve:
        logger.info(f"Assignment {assignment.assignment_id} on task {task.task_id} rejected by {reviewer.user_id}")
        return 0

    await db.execute(
        update(User)
        .where(User.user_id == assignment.user_id)
        .values(points=User.points + task.points)
        .execution_options(synchronize_session=False)
    )
    db.add(Contribution(
        user_id=assignment.user_id,
        task_id=task.task_id,
        community_id=task.community_id,
        points=task.points,
        type=ContributionType.task_completion,
        description=f"Completed task: {task.title}",
    ))
    logger.info(
        f"Assignment {assignment.assignment_id} on task {task.task_id} approved by {reviewer.user_id}; "
        f"awarded {task.points} points to user {assignment.user_id}"
    )
    return task.points


async def review_task(
    db: AsyncSession,
    task_id: int,
    action: ReviewAction,
    review_notes: Optional[str],
    reviewer: User,
) -> Tuple[List[TaskAssignment], int]:
    """
    Whole-task review: every currently submitted assignment gets the same verdict.
    Returns the reviewed assignments and the total points awarded.
    """
    task = await get_task(db, task_id, lock=True)
    await require_community_admin(
        db, reviewer, task.community_id, "Only community administrators can review task submissions"
    )
    ensure_not_cancelled(task)
    if task.status != TaskStatus.submitted:
        raise InvalidState("Task is not in submitted status")

    submitted = [a for a in task.assignments if a.status == AssignmentStatus.submitted]
    if not submitted:
        raise InvalidState("Task has no submissions awaiting review")

    awarded = 0
    for assignment in submitted:
        awarded += await _apply_review(db, task, assignment, action, review_notes, reviewer)

    refresh_task_status(task, reviewer, review_notes)
    await db.flush()
    return submitted, awarded


async def review_assignment(
    db: AsyncSession,
    task_id: int,
    user_id: int,
    action: ReviewAction,
    review_notes: Optional[str],
    reviewer: User,
) -> TaskAssignment:
    """Review one assignee's submission, independently of the rest of a group task."""
    task = await get_task(db, task_id, lock=True)
    await require_community_admin(
        db, reviewer, task.community_id, "Only community administrators can review submissions"
    )
    assignment = require_active_assignment(task, user_id, "Assignment not found")
    ensure_not_cancelled(task)
    if assignment.status != AssignmentStatus.submitted:
        raise InvalidState("Assignment is not in submitted status")

    await _apply_review(db, task, assignment, action, review_notes, reviewer)
    refresh_task_status(task, reviewer, review_notes)
    await db.flush()
    return assignment


# ------------------------------
# Revoke
# ------------------------------
async def revoke(db: AsyncSession, task_id: int, user: User) -> TaskAssignment:
    """Cancel the caller's own assignment, freeing its capacity slot."""
    task = await get_task(db, task_id, lock=True)
    assignment = require_active_assignment(task, user.user_id, "You are not assigned to this task")

    if assignment.status in UNREVOCABLE_STATUSES:
        raise InvalidState("Cannot revoke assignment for submitted or completed tasks")
    ensure_transition(assignment.status, AssignmentStatus.cancelled)

    assignment.status = AssignmentStatus.cancelled
    refresh_task_status(task)
    await db.flush()
    logger.info(f"User {user.user_id} revoked assignment on task {task_id}")
    return assignment
