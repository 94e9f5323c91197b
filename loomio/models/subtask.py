"""Checklist items that break a task into ordered steps."""

from sqlalchemy import Column, Text, String, DateTime, Integer, Enum as SQLEnum, ForeignKey, Index
from sqlalchemy.orm import relationship

from loomio.constants.constants import SubtaskStatus
from loomio.models.base import Base, TimestampMixin


class Subtask(Base, TimestampMixin):
    __tablename__ = "subtasks"
    __table_args__ = (Index("ix_subtasks_task_position", "task_id", "position"),)

    subtask_id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.task_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(SubtaskStatus), nullable=False, default=SubtaskStatus.not_started)
    position = Column(Integer, nullable=False, default=0)
    assigned_to = Column(Integer, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(Integer, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)

    task = relationship("Task", back_populates="subtasks")
    assignee = relationship("User", foreign_keys=[assigned_to])
    creator = relationship("User", foreign_keys=[created_by])
    completer = relationship("User", foreign_keys=[completed_by])
