from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from loomio.constants.constants import EventCategory, EventStatus


class EventCreateRequest(BaseModel):
    title: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    community_id: int
    date: datetime
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    event_type: EventCategory = EventCategory.meeting
    max_attendees: Optional[int] = Field(None, ge=1)
    is_public: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError("end_date must not be before date")
        return self


class EventUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    event_type: Optional[EventCategory] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    is_public: Optional[bool] = None
    status: Optional[EventStatus] = None
