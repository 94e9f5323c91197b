"""Community-scoped task labels and their many-to-many link to tasks."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship

from loomio.constants.constants import DEFAULT_TAG_COLOR
from loomio.models.base import Base, TimestampMixin, utcnow

task_tag_assignments = Table(
    "task_tag_assignments",
    Base.metadata,
    Column("task_id", Integer, ForeignKey("tasks.task_id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("task_tags.tag_id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("assigned_at", DateTime(timezone=True), default=utcnow, nullable=False),
)


class TaskTag(Base, TimestampMixin):
    __tablename__ = "task_tags"
    __table_args__ = (UniqueConstraint("community_id", "name", name="uq_task_tag_community_name"),)

    tag_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False, default=DEFAULT_TAG_COLOR)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)

    creator = relationship("User", foreign_keys=[created_by])
    tasks = relationship("Task", secondary=task_tag_assignments, back_populates="tags", passive_deletes=True)
