"""Event model for community calendars."""

from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from loomio.constants.constants import EventCategory, EventStatus
from loomio.models.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    """Model representing events organized inside a community."""

    __tablename__ = "events"
    event_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    event_type = Column(Enum(EventCategory), nullable=False, default=EventCategory.meeting)
    max_attendees = Column(Integer, nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)
    status = Column(Enum(EventStatus), nullable=False, default=EventStatus.scheduled)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    community_id = Column(Integer, ForeignKey("communities.community_id", ondelete="CASCADE"), nullable=False, index=True)

    creator = relationship("User", foreign_keys=[created_by])
    community = relationship("Community")
