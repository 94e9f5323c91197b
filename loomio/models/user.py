"""User model for the Loomio system."""

from sqlalchemy import Column, String, Boolean, Integer, Enum
from sqlalchemy.orm import relationship

from loomio.constants.constants import UserRole
from loomio.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"
    user_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.member)
    points = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    memberships = relationship("UserCommunity", back_populates="user", cascade="all, delete-orphan")
    assignments = relationship("TaskAssignment", back_populates="user", foreign_keys="[TaskAssignment.user_id]")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
