"""Community calendar events."""

import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loomio.constants.constants import EventCategory, EventStatus, UserRole
from loomio.core.database import aget_db
from loomio.core.exceptions import NotFoundError, ValidationError
from loomio.core.security import get_current_user
from loomio.models.community import Community
from loomio.models.event import Event
from loomio.models.user import User
from loomio.schemas.eventSchema import EventCreateRequest, EventUpdateRequest
from loomio.services import NotificationService
from loomio.utils.check_community_role import get_user_community_ids, require_community_admin, require_membership
from loomio.utils.datetime_utils import as_utc
from loomio.utils.serializers import serialize_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event).options(selectinload(Event.community)).where(Event.event_id == event_id)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise NotFoundError("Event not found")
    return event


@router.get("")
async def list_events(
    community_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    event_type: Optional[EventCategory] = None,
    status: Optional[EventStatus] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Events of one community, or of every community the caller belongs to."""
    query = select(Event)
    if community_id is not None:
        await require_membership(db, current_user, community_id, "You are not a member of this community")
        query = query.where(Event.community_id == community_id)
    elif current_user.role != UserRole.platform_admin:
        query = query.where(Event.community_id.in_(await get_user_community_ids(db, current_user.user_id)))

    if start_date:
        query = query.where(Event.date >= as_utc(start_date))
    if end_date:
        query = query.where(Event.date <= as_utc(end_date))
    if event_type:
        query = query.where(Event.event_type == event_type)
    if status:
        query = query.where(Event.status == status)

    result = await db.execute(query.order_by(Event.date.asc()))
    events = result.scalars().all()
    return {"events": [serialize_event(e) for e in events], "total": len(events)}


@router.get("/{event_id}")
async def get_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    event = await _get_event(db, event_id)
    if not event.is_public:
        await require_membership(db, current_user, event.community_id, "You are not a member of this community")
    return {"event": serialize_event(event)}


@router.post("", status_code=201)
async def create_event(
    request: EventCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    community = await db.get(Community, request.community_id)
    if community is None or not community.is_active:
        raise NotFoundError("Community not found")
    await require_community_admin(db, current_user, community.community_id, "Only community admins can create events")

    event = Event(
        title=request.title.strip(),
        description=request.description,
        date=as_utc(request.date),
        end_date=as_utc(request.end_date),
        location=request.location,
        event_type=request.event_type,
        max_attendees=request.max_attendees,
        is_public=request.is_public,
        status=EventStatus.scheduled,
        created_by=current_user.user_id,
        community_id=community.community_id,
    )
    db.add(event)
    await db.commit()
    logger.info(f"Event {event.event_id} created in community {community.community_id}")

    response = {"message": "Event created successfully", "event": serialize_event(event)}
    await NotificationService.deliver(
        db, NotificationService.notify_event_created(db, event, current_user, community.name), "event created"
    )
    return response


@router.put("/{event_id}")
async def update_event(
    event_id: int,
    request: EventUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    event = await _get_event(db, event_id)
    await require_community_admin(db, current_user, event.community_id, "Only community admins can update events")

    changes = request.model_dump(exclude_unset=True)
    for field in ("date", "end_date"):
        if field in changes:
            changes[field] = as_utc(changes[field])
    if changes.get("date") is None and "date" in changes:
        raise ValidationError("Event date cannot be empty")

    for field, value in changes.items():
        setattr(event, field, value)
    if event.end_date is not None and as_utc(event.end_date) < as_utc(event.date):
        raise ValidationError("end_date must not be before date")

    community_name = event.community.name if event.community else "Community"
    await db.commit()

    response = {"message": "Event updated successfully", "event": serialize_event(event)}
    await NotificationService.deliver(
        db, NotificationService.notify_event_updated(db, event, current_user, community_name), "event updated"
    )
    return response


@router.delete("/{event_id}")
async def delete_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    event = await _get_event(db, event_id)
    await require_community_admin(db, current_user, event.community_id, "Only community admins can delete events")

    await db.delete(event)
    await db.commit()
    return {"message": "Event deleted successfully"}
