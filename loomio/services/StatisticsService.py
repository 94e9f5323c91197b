"""
Per-user aggregates over assignments, contributions, tasks and events.

Backs the profile stats, `GET /users/{id}/stats` and the `/statistics`
endpoints. Everything is computed on read; nothing here writes.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loomio.constants.constants import AssignmentStatus, TaskPriority
from loomio.models.base import utcnow
from loomio.models.contribution import Contribution
from loomio.models.event import Event
from loomio.models.task import Task, TaskAssignment
from loomio.models.user import User
from loomio.utils.datetime_utils import isoformat

logger = logging.getLogger(__name__)

PENDING_STATUSES = (AssignmentStatus.assigned, AssignmentStatus.accepted)


async def assignment_counts(db: AsyncSession, user_id: int) -> Dict[AssignmentStatus, int]:
    result = await db.execute(
        select(TaskAssignment.status, func.count(TaskAssignment.assignment_id))
        .where(TaskAssignment.user_id == user_id)
        .group_by(TaskAssignment.status)
    )
    return {row[0]: row[1] for row in result.all()}


def task_summary(counts: Dict[AssignmentStatus, int]) -> dict:
    return {
        "completed_tasks": counts.get(AssignmentStatus.completed, 0),
        "pending_tasks": sum(counts.get(s, 0) for s in PENDING_STATUSES),
        "in_progress_tasks": counts.get(AssignmentStatus.in_progress, 0),
        "submitted_tasks": counts.get(AssignmentStatus.submitted, 0),
    }


def serialize_contribution(contribution: Contribution) -> dict:
    task = contribution.task
    return {
        "contribution_id": contribution.contribution_id,
        "type": contribution.type.value,
        "description": contribution.description,
        "points": contribution.points,
        "community_id": contribution.community_id,
        "date": isoformat(contribution.date),
        "task": {"task_id": task.task_id, "title": task.title} if task is not None else None,
    }


async def recent_contributions(
    db: AsyncSession, user_id: int, limit: int = 10, offset: int = 0
) -> Tuple[List[Contribution], int]:
    total = (
        await db.execute(select(func.count(Contribution.contribution_id)).where(Contribution.user_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(Contribution)
        .options(selectinload(Contribution.task))
        .where(Contribution.user_id == user_id)
        .order_by(Contribution.date.desc(), Contribution.contribution_id.desc())
        .offset(offset)
        .limit(limit)
    )
    return result.scalars().all(), total


async def user_stats(db: AsyncSession, user: User) -> dict:
    """Lifetime totals for one user."""
    earned = (
        await db.execute(
            select(func.coalesce(func.sum(Contribution.points), 0)).where(Contribution.user_id == user.user_id)
        )
    ).scalar_one()
    events_created = (
        await db.execute(select(func.count(Event.event_id)).where(Event.created_by == user.user_id))
    ).scalar_one()
    contributions, _ = await recent_contributions(db, user.user_id)

    stats = {"total_points": user.points, "earned_points": earned, "events_created": events_created}
    stats.update(task_summary(await assignment_counts(db, user.user_id)))
    return {
        "stats": stats,
        "recent_contributions": [serialize_contribution(c) for c in contributions],
    }


async def user_statistics(db: AsyncSession, user: User, days: int = 30, community_id: Optional[int] = None) -> dict:
    """
    Activity of one user over the last `days` days, optionally limited to one community.

    Assignments count towards the window by `assigned_at`, contributions by
    `date` and created tasks by `created_at`. Cancelled assignments are left out.
    """
    end = utcnow()
    start = end - timedelta(days=days)

    created_conditions = [Task.creator_id == user.user_id, Task.created_at >= start]
    if community_id is not None:
        created_conditions.append(Task.community_id == community_id)
    tasks_created = (await db.execute(select(func.count(Task.task_id)).where(*created_conditions))).scalar_one()

    assignment_conditions = [
        TaskAssignment.user_id == user.user_id,
        TaskAssignment.assigned_at >= start,
        TaskAssignment.status != AssignmentStatus.cancelled,
    ]
    if community_id is not None:
        assignment_conditions.append(Task.community_id == community_id)
    rows = await db.execute(
        select(TaskAssignment.status, Task.priority, func.count(TaskAssignment.assignment_id))
        .join(Task, Task.task_id == TaskAssignment.task_id)
        .where(*assignment_conditions)
        .group_by(TaskAssignment.status, Task.priority)
    )
    by_status = {s.value: 0 for s in AssignmentStatus if s != AssignmentStatus.cancelled}
    by_priority = {p.value: 0 for p in TaskPriority}
    for status, priority, count in rows.all():
        by_status[status.value] += count
        by_priority[priority.value] += count

    assigned = sum(by_status.values())
    completed = by_status[AssignmentStatus.completed.value]

    contribution_conditions = [Contribution.user_id == user.user_id, Contribution.date >= start]
    if community_id is not None:
        contribution_conditions.append(Contribution.community_id == community_id)
    contribution_rows = await db.execute(
        select(Contribution.type, func.sum(Contribution.points), func.count(Contribution.contribution_id))
        .where(*contribution_conditions)
        .group_by(Contribution.type)
    )
    by_type = {}
    for contribution_type, points, count in contribution_rows.all():
        by_type[contribution_type.value] = {"points": int(points or 0), "count": count}

    return {
        "user": {
            "user_id": user.user_id,
            "full_name": user.full_name,
            "email": user.email,
            "total_points": user.points,
            "member_since": isoformat(user.created_at),
        },
        "period": {"days": days, "start_date": isoformat(start), "end_date": isoformat(end)},
        "community_id": community_id,
        "statistics": {
            "tasks": {
                "created": tasks_created,
                "assigned": assigned,
                "completed": completed,
                "completion_rate": round(completed * 100 / assigned) if assigned else 0,
                "by_status": by_status,
                "by_priority": by_priority,
            },
            "contributions": {
                "total_points": sum(item["points"] for item in by_type.values()),
                "by_type": by_type,
            },
        },
    }
