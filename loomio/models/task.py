"""Task and TaskAssignment models."""

from sqlalchemy import (
    Column, Text, String, DateTime, Integer, Enum as SQLEnum, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from loomio.constants.constants import AssignmentStatus, TaskPriority, TaskStatus, TaskType
from loomio.models.base import Base, TimestampMixin, utcnow


class Task(Base, TimestampMixin):
    """A unit of work scoped to a community; individual or group."""

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("max_assignees >= 1 AND max_assignees <= 50", name="ck_task_max_assignees"),
    )

    task_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.medium)
    task_type = Column(SQLEnum(TaskType), nullable=False, default=TaskType.individual)
    max_assignees = Column(Integer, nullable=False, default=1)
    deadline = Column(DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.not_started)
    points = Column(Integer, nullable=False, default=10)
    estimated_hours = Column(Integer, nullable=True)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    completion_date = Column(DateTime(timezone=True), nullable=True)

    community = relationship("Community", back_populates="tasks")
    creator = relationship("User", foreign_keys=[creator_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
    assignments = relationship(
        "TaskAssignment",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskAssignment.assignment_id",
    )
    subtasks = relationship(
        "Subtask",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Subtask.position",
    )
    tags = relationship(
        "TaskTag",
        secondary="task_tag_assignments",
        back_populates="tasks",
        passive_deletes=True,
        order_by="TaskTag.name",
    )


class TaskAssignment(Base, TimestampMixin):
    """One user's assignment to one task, carrying its own workflow status."""

    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "user_id", name="uq_task_assignment_user"),)

    assignment_id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.task_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(AssignmentStatus), nullable=False, default=AssignmentStatus.assigned)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    submission_link = Column(String(500), nullable=True)
    submission_notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    task = relationship("Task", back_populates="assignments")
    user = relationship("User", back_populates="assignments", foreign_keys=[user_id])
