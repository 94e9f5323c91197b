"""In-app notification fan-out for task, event and community activity."""

import logging
from typing import Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import (
    CommunityRole,
    NotificationPriority,
    NotificationType,
    RelatedType,
)
from loomio.models.community import UserCommunity
from loomio.models.notifications import Notification

logger = logging.getLogger(__name__)


async def notify_users(
    db: AsyncSession,
    user_ids: Iterable[int],
    *,
    title: str,
    message: str,
    type: NotificationType,
    related_id: Optional[int] = None,
    related_type: Optional[RelatedType] = None,
    community_id: Optional[int] = None,
    priority: NotificationPriority = NotificationPriority.medium,
) -> List[Notification]:
    """Create one notification per distinct user id. The caller commits."""
    notifications = []
    for user_id in dict.fromkeys(user_ids):
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_id=related_id,
            related_type=related_type,
            community_id=community_id,
            priority=priority,
        )
        db.add(notification)
        notifications.append(notification)
    return notifications


async def get_community_admin_ids(db: AsyncSession, community_id: int) -> List[int]:
    result = await db.execute(
        select(UserCommunity.user_id).where(
            UserCommunity.community_id == community_id,
            UserCommunity.role == CommunityRole.community_admin,
            UserCommunity.is_active == True,
        )
    )
    return [row[0] for row in result.all()]


async def get_community_member_ids(db: AsyncSession, community_id: int, exclude: Iterable[int] = ()) -> List[int]:
    excluded = set(exclude)
    result = await db.execute(
        select(UserCommunity.user_id).where(
            UserCommunity.community_id == community_id,
            UserCommunity.is_active == True,
        )
    )
    return [row[0] for row in result.all() if row[0] not in excluded]


async def notify_community_admins(db: AsyncSession, community_id: int, exclude: Iterable[int] = (), **kwargs):
    excluded = set(exclude)
    admin_ids = [uid for uid in await get_community_admin_ids(db, community_id) if uid not in excluded]
    return await notify_users(db, admin_ids, community_id=community_id, **kwargs)


async def notify_community_members(db: AsyncSession, community_id: int, exclude: Iterable[int] = (), **kwargs):
    member_ids = await get_community_member_ids(db, community_id, exclude)
    return await notify_users(db, member_ids, community_id=community_id, **kwargs)


# ------------------------------
# Task notifications
# ------------------------------
async def notify_task_created(db, task, creator, community_name):
    return await notify_community_members(
        db,
        task.community_id,
        exclude=[creator.user_id],
        title="New Task Available",
        message=f'A new task "{task.title}" has been created by {creator.full_name} in {community_name}.',
        type=NotificationType.task_created,
        related_id=task.task_id,
        related_type=RelatedType.task,
    )


async def notify_task_assigned(db, task, user_ids, assigner, community_name):
    return await notify_users(
        db,
        user_ids,
        title="Task Assigned",
        message=f'You have been assigned to task "{task.title}" by {assigner.full_name} in {community_name}.',
        type=NotificationType.task_assigned,
        related_id=task.task_id,
        related_type=RelatedType.task,
        community_id=task.community_id,
        priority=NotificationPriority.high,
    )


async def notify_task_self_assigned(db, task, user, community_name):
    return await notify_community_admins(
        db,
        task.community_id,
        exclude=[user.user_id],
        title="Task Self-Assigned",
        message=f'{user.full_name} has self-assigned to task "{task.title}" in {community_name}.',
        type=NotificationType.task_self_assigned,
        related_id=task.task_id,
        related_type=RelatedType.task,
    )


async def notify_task_submitted(db, task, user, community_name):
    return await notify_community_admins(
        db,
        task.community_id,
        exclude=[user.user_id],
        title="Task Submitted for Review",
        message=f'{user.full_name} has submitted task "{task.title}" for review in {community_name}.',
        type=NotificationType.task_submitted,
        related_id=task.task_id,
        related_type=RelatedType.task,
        priority=NotificationPriority.high,
    )


async def notify_task_approved(db, task, user_ids, reviewer, community_name):
    return await notify_users(
        db,
        user_ids,
        title="Task Approved",
        message=(
            f'Congratulations! Your submission for task "{task.title}" has been approved '
            f"by {reviewer.full_name} in {community_name}. You earned {task.points} points."
        ),
        type=NotificationType.task_approved,
        related_id=task.task_id,
        related_type=RelatedType.task,
        community_id=task.community_id,
        priority=NotificationPriority.high,
    )


async def notify_task_rejected(db, task, user_ids, reviewer, review_notes, community_name):
    message = f'Your submission for task "{task.title}" was rejected by {reviewer.full_name} in {community_name}.'
    if review_notes:
        message += f" Feedback: {review_notes}"
    return await notify_users(
        db,
        user_ids,
        title="Task Rejected",
        message=message,
        type=NotificationType.task_rejected,
        related_id=task.task_id,
        related_type=RelatedType.task,
        community_id=task.community_id,
        priority=NotificationPriority.high,
    )


async def notify_task_updated(db, task, user_ids, updater, community_name):
    return await notify_users(
        db,
        user_ids,
        title="Task Updated",
        message=f'Task "{task.title}" has been updated by {updater.full_name} in {community_name}. Please review the changes.',
        type=NotificationType.task_updated,
        related_id=task.task_id,
        related_type=RelatedType.task,
        community_id=task.community_id,
    )


async def notify_task_deleted(db, task_title, user_ids, deleter, community_id, community_name):
    return await notify_users(
        db,
        user_ids,
        title="Task Deleted",
        message=f'Task "{task_title}" has been deleted by {deleter.full_name} in {community_name}.',
        type=NotificationType.task_deleted,
        related_type=RelatedType.task,
        community_id=community_id,
    )


# ------------------------------
# Event notifications
# ------------------------------
async def notify_event_created(db, event, creator, community_name):
    return await notify_community_members(
        db,
        event.community_id,
        exclude=[creator.user_id],
        title="New Event Created",
        message=f'A new event "{event.title}" has been scheduled by {creator.full_name} in {community_name}.',
        type=NotificationType.event_created,
        related_id=event.event_id,
        related_type=RelatedType.event,
    )


async def notify_event_updated(db, event, updater, community_name):
    return await notify_community_members(
        db,
        event.community_id,
        exclude=[updater.user_id],
        title="Event Updated",
        message=f'Event "{event.title}" has been updated by {updater.full_name} in {community_name}.',
        type=NotificationType.event_updated,
        related_id=event.event_id,
        related_type=RelatedType.event,
    )


# ------------------------------
# Community notifications
# ------------------------------
async def notify_member_joined(db, community, user):
    return await notify_community_admins(
        db,
        community.community_id,
        exclude=[user.user_id],
        title="New Member Joined",
        message=f"{user.full_name} has joined {community.name}.",
        type=NotificationType.community_member_joined,
        related_id=community.community_id,
        related_type=RelatedType.community,
        priority=NotificationPriority.low,
    )


async def notify_member_left(db, community, user):
    return await notify_community_admins(
        db,
        community.community_id,
        exclude=[user.user_id],
        title="Member Left",
        message=f"{user.full_name} has left {community.name}.",
        type=NotificationType.community_member_left,
        related_id=community.community_id,
        related_type=RelatedType.community,
        priority=NotificationPriority.low,
    )


async def deliver(db: AsyncSession, coroutine, description: str):
    """Run a notification coroutine and commit it; failures are logged, never raised."""
    try:
        await coroutine
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Error sending {description} notification: {e}")
