"""Constants for user roles, task and assignment statuses, notification types and event categories."""

from enum import Enum


class UserRole(str, Enum):
    """Enumeration of platform-wide user roles."""

    platform_admin = "platform_admin"
    community_admin = "community_admin"
    member = "member"


class CommunityRole(str, Enum):
    """Role of a user inside one community."""

    community_admin = "community_admin"
    member = "member"


class TaskStatus(str, Enum):
    """Aggregate task status, derived from the task's assignments."""

    not_started = "not_started"
    in_progress = "in_progress"
    submitted = "submitted"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"


class AssignmentStatus(str, Enum):
    """Status of one user's assignment to a task."""

    assigned = "assigned"
    accepted = "accepted"
    in_progress = "in_progress"
    submitted = "submitted"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"


class SubtaskStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class TaskType(str, Enum):
    individual = "individual"
    group = "group"


class ReviewAction(str, Enum):
    approve = "approve"
    reject = "reject"


class ContributionType(str, Enum):
    task_completion = "task_completion"
    event_attendance = "event_attendance"
    discussion_participation = "discussion_participation"
    other = "other"


class NotificationType(str, Enum):
    task_created = "task_created"
    task_assigned = "task_assigned"
    task_self_assigned = "task_self_assigned"
    task_submitted = "task_submitted"
    task_approved = "task_approved"
    task_rejected = "task_rejected"
    task_updated = "task_updated"
    task_deleted = "task_deleted"
    event_created = "event_created"
    event_updated = "event_updated"
    community_member_joined = "community_member_joined"
    community_member_left = "community_member_left"
    general = "general"


class RelatedType(str, Enum):
    task = "task"
    event = "event"
    community = "community"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class EventCategory(str, Enum):
    """Enumeration of event categories."""

    meeting = "meeting"
    workshop = "workshop"
    social = "social"
    training = "training"
    other = "other"


class EventStatus(str, Enum):
    scheduled = "scheduled"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"


class LeaderboardPeriod(str, Enum):
    all_time = "all-time"
    monthly = "monthly"
    weekly = "weekly"


# Legal assignment moves. Anything missing here is rejected.
ASSIGNMENT_TRANSITIONS = {
    AssignmentStatus.assigned: {AssignmentStatus.accepted, AssignmentStatus.cancelled},
    AssignmentStatus.accepted: {
        AssignmentStatus.in_progress,
        AssignmentStatus.submitted,
        AssignmentStatus.cancelled,
    },
    AssignmentStatus.in_progress: {AssignmentStatus.submitted, AssignmentStatus.cancelled},
    AssignmentStatus.submitted: {AssignmentStatus.completed, AssignmentStatus.rejected},
    AssignmentStatus.rejected: {
        AssignmentStatus.in_progress,
        AssignmentStatus.submitted,
        AssignmentStatus.cancelled,
    },
    AssignmentStatus.completed: set(),
    AssignmentStatus.cancelled: {AssignmentStatus.assigned},
}

# Statuses a user can move their own assignment into via PUT /tasks/{id}/status
SELF_SERVICE_STATUSES = (AssignmentStatus.accepted, AssignmentStatus.in_progress)

# Task statuses that still accept new assignees
OPEN_TASK_STATUSES = {
    "individual": {TaskStatus.not_started, TaskStatus.in_progress},
    "group": {TaskStatus.not_started, TaskStatus.in_progress, TaskStatus.submitted, TaskStatus.rejected},
}

MAX_GROUP_ASSIGNEES = 50

COMMUNITY_CODE_LENGTH = 6
COMMUNITY_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

DEFAULT_TAG_COLOR = "#3B82F6"
