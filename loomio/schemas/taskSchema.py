from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

from loomio.constants.constants import (
    MAX_GROUP_ASSIGNEES,
    AssignmentStatus,
    ReviewAction,
    TaskPriority,
    TaskStatus,
    TaskType,
)

LEGACY_REVIEW_STATUSES = {
    "completed": ReviewAction.approve,
    "approved": ReviewAction.approve,
    "rejected": ReviewAction.reject,
}


class TaskCreateRequest(BaseModel):
    """Request schema for creating a new task."""
    title: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    community_id: int
    deadline: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.medium
    task_type: TaskType = TaskType.individual
    max_assignees: int = Field(1, ge=1, le=MAX_GROUP_ASSIGNEES)
    points: Optional[int] = Field(None, ge=0)
    estimated_hours: Optional[int] = Field(None, ge=0)
    assignee_ids: List[int] = Field(default_factory=list)


class TaskUpdateRequest(BaseModel):
    """Request schema for updating a task."""
    title: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    deadline: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    max_assignees: Optional[int] = Field(None, ge=1, le=MAX_GROUP_ASSIGNEES)
    points: Optional[int] = Field(None, ge=0)
    estimated_hours: Optional[int] = Field(None, ge=0)
    status: Optional[TaskStatus] = None


class AssignUsersRequest(BaseModel):
    user_ids: List[int] = Field(default_factory=list)


class AssignmentStatusUpdateRequest(BaseModel):
    """The caller's own move to accepted or in_progress."""
    status: AssignmentStatus
    notes: Optional[str] = Field(None, max_length=2000)


class TaskSubmitRequest(BaseModel):
    submission_link: Optional[str] = Field(None, max_length=500)
    submission_notes: Optional[str] = Field(None, max_length=5000)


class TaskReviewRequest(BaseModel):
    """
    Review verdict. Older clients send `{"status": "completed" | "rejected"}`
    instead of `{"action": ...}`; both forms are accepted.
    """
    action: Optional[ReviewAction] = None
    status: Optional[str] = None
    review_notes: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def resolve_action(self):
        if self.action is None and self.status is not None:
            self.action = LEGACY_REVIEW_STATUSES.get(self.status.lower())
        if self.action is None:
            raise ValueError('Action must be either "approve" or "reject"')
        return self
