"""Community and membership models."""

from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from loomio.constants.constants import CommunityRole
from loomio.models.base import Base, TimestampMixin, utcnow


class Community(Base, TimestampMixin):
    """A membership group with its own admins, tasks, events and join code."""

    __tablename__ = "communities"
    community_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    community_code = Column(String(6), unique=True, index=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    creator = relationship("User", foreign_keys=[created_by])
    memberships = relationship("UserCommunity", back_populates="community", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="community", cascade="all, delete-orphan")


class UserCommunity(Base, TimestampMixin):
    """Membership of one user in one community."""

    __tablename__ = "user_communities"
    __table_args__ = (UniqueConstraint("user_id", "community_id", name="uq_user_community"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(CommunityRole), nullable=False, default=CommunityRole.member)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="memberships")
    community = relationship("Community", back_populates="memberships")
