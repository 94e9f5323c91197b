from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from loomio.constants.constants import NotificationPriority, NotificationType, RelatedType
from loomio.models.base import Base, TimestampMixin


class Notification(Base, TimestampMixin):
    """Model for in-app notifications."""

    __tablename__ = "notifications"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Enum(NotificationType), nullable=False, default=NotificationType.general)
    priority = Column(Enum(NotificationPriority), nullable=False, default=NotificationPriority.medium)

    # What the notification points at (task_id, event_id, community_id)
    related_id = Column(Integer, nullable=True)
    related_type = Column(Enum(RelatedType), nullable=True)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="SET NULL"), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
