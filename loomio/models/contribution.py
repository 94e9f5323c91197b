"""Points ledger: one row per credited contribution."""

from sqlalchemy import Column, Text, DateTime, Integer, Enum, ForeignKey
from sqlalchemy.orm import relationship

from loomio.constants.constants import ContributionType
from loomio.models.base import Base, TimestampMixin, utcnow


class Contribution(Base, TimestampMixin):
    __tablename__ = "contributions"

    contribution_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.task_id", ondelete="SET NULL"), nullable=True)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="CASCADE"), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    type = Column(Enum(ContributionType), nullable=False, default=ContributionType.task_completion)
    description = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User")
    task = relationship("Task")
