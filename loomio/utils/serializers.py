"""Plain-dict renderings of ORM rows for JSON responses."""

from typing import Optional

from loomio.models.community import Community
from loomio.models.event import Event
from loomio.models.notifications import Notification
from loomio.models.subtask import Subtask
from loomio.models.tag import TaskTag
from loomio.models.task import Task, TaskAssignment
from loomio.models.user import User
from loomio.utils.datetime_utils import isoformat


def _value(enum_member):
    return enum_member.value if enum_member is not None else None


def serialize_user_brief(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "user_id": user.user_id,
        "full_name": user.full_name,
        "email": user.email,
    }


def serialize_user(user: User, memberships=None) -> dict:
    data = {
        "user_id": user.user_id,
        "email": user.email,
        "full_name": user.full_name,
        "role": _value(user.role),
        "points": user.points,
        "is_active": user.is_active,
        "created_at": isoformat(user.created_at),
    }
    if memberships is not None:
        data["communities"] = [
            {
                "community_id": m.community.community_id,
                "name": m.community.name,
                "community_code": m.community.community_code,
                "role": _value(m.role),
            }
            for m in memberships
        ]
    return data


def serialize_community(community: Community, **extra) -> dict:
    data = {
        "community_id": community.community_id,
        "name": community.name,
        "description": community.description,
        "community_code": community.community_code,
        "created_by": community.created_by,
        "is_active": community.is_active,
        "created_at": isoformat(community.created_at),
    }
    data.update(extra)
    return data


def serialize_assignment(assignment: TaskAssignment, include_user: bool = True) -> dict:
    data = {
        "assignment_id": assignment.assignment_id,
        "task_id": assignment.task_id,
        "user_id": assignment.user_id,
        "status": _value(assignment.status),
        "assigned_at": isoformat(assignment.assigned_at),
        "accepted_at": isoformat(assignment.accepted_at),
        "started_at": isoformat(assignment.started_at),
        "notes": assignment.notes,
        "submission_link": assignment.submission_link,
        "submission_notes": assignment.submission_notes,
        "submitted_at": isoformat(assignment.submitted_at),
        "review_notes": assignment.review_notes,
        "reviewed_at": isoformat(assignment.reviewed_at),
        "reviewed_by": assignment.reviewed_by,
        "completed_at": isoformat(assignment.completed_at),
    }
    if include_user:
        data["user"] = serialize_user_brief(assignment.user)
    return data


def serialize_task(task: Task, include_assignments: bool = True) -> dict:
    data = {
        "task_id": task.task_id,
        "title": task.title,
        "description": task.description,
        "priority": _value(task.priority),
        "task_type": _value(task.task_type),
        "max_assignees": task.max_assignees,
        "deadline": isoformat(task.deadline),
        "status": _value(task.status),
        "points": task.points,
        "estimated_hours": task.estimated_hours,
        "community_id": task.community_id,
        "community_name": task.community.name if task.community else None,
        "creator": serialize_user_brief(task.creator),
        "reviewed_by": task.reviewed_by,
        "reviewed_at": isoformat(task.reviewed_at),
        "review_notes": task.review_notes,
        "completion_date": isoformat(task.completion_date),
        "tags": [serialize_tag(tag) for tag in task.tags],
        "created_at": isoformat(task.created_at),
        "updated_at": isoformat(task.updated_at),
    }
    if include_assignments:
        assignments = [a for a in task.assignments if a.status.value != "cancelled"]
        data["assignments"] = [serialize_assignment(a) for a in assignments]
        data["assignee_count"] = len(assignments)
    return data


def serialize_tag(tag: TaskTag) -> dict:
    return {
        "tag_id": tag.tag_id,
        "name": tag.name,
        "color": tag.color,
        "community_id": tag.community_id,
        "created_by": tag.created_by,
    }


def serialize_subtask(subtask: Subtask) -> dict:
    return {
        "subtask_id": subtask.subtask_id,
        "task_id": subtask.task_id,
        "title": subtask.title,
        "description": subtask.description,
        "status": _value(subtask.status),
        "position": subtask.position,
        "assigned_to": subtask.assigned_to,
        "assignee": serialize_user_brief(subtask.assignee),
        "created_by": subtask.created_by,
        "completed_at": isoformat(subtask.completed_at),
        "completed_by": subtask.completed_by,
        "created_at": isoformat(subtask.created_at),
        "updated_at": isoformat(subtask.updated_at),
    }


def serialize_notification(notification: Notification) -> dict:
    return {
        "notification_id": notification.notification_id,
        "title": notification.title,
        "message": notification.message,
        "type": _value(notification.type),
        "priority": _value(notification.priority),
        "related_id": notification.related_id,
        "related_type": _value(notification.related_type),
        "community_id": notification.community_id,
        "is_read": notification.is_read,
        "read_at": isoformat(notification.read_at),
        "created_at": isoformat(notification.created_at),
    }


def serialize_event(event: Event) -> dict:
    return {
        "event_id": event.event_id,
        "title": event.title,
        "description": event.description,
        "date": isoformat(event.date),
        "end_date": isoformat(event.end_date),
        "location": event.location,
        "event_type": _value(event.event_type),
        "max_attendees": event.max_attendees,
        "is_public": event.is_public,
        "status": _value(event.status),
        "created_by": event.created_by,
        "community_id": event.community_id,
        "created_at": isoformat(event.created_at),
    }
