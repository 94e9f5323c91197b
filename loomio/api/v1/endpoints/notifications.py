from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from typing import Optional

from loomio.constants.constants import NotificationType
from loomio.core.database import aget_db
from loomio.core.exceptions import NotFoundError
from loomio.core.security import get_current_user
from loomio.models.base import utcnow
from loomio.models.notifications import Notification
from loomio.models.user import User
from loomio.utils.serializers import serialize_notification

router = APIRouter(prefix="/notifications", tags=["Notifications"])


async def _unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.notification_id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,
        )
    )
    return result.scalar_one()


async def _get_own_notification(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.notification_id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


@router.get("")
async def get_notifications(
    is_read: Optional[bool] = None,
    type: Optional[NotificationType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Get notifications for the current user, newest first."""
    conditions = [Notification.user_id == current_user.user_id]
    if is_read is not None:
        conditions.append(Notification.is_read == is_read)
    if type is not None:
        conditions.append(Notification.type == type)

    total = (await db.execute(select(func.count(Notification.notification_id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    return {
        "notifications": [serialize_notification(n) for n in result.scalars().all()],
        "unread_count": await _unread_count(db, current_user.user_id),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    return {"unread_count": await _unread_count(db, current_user.user_id)}


@router.put("/read-all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.user_id, Notification.is_read == False)
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return {"message": "All notifications marked as read", "updated": result.rowcount}


@router.put("/{notification_id}/read")
async def mark_notification_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    notification = await _get_own_notification(db, notification_id, current_user.user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.commit()
    return {"message": "Notification marked as read", "notification": serialize_notification(notification)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    notification = await _get_own_notification(db, notification_id, current_user.user_id)
    await db.delete(notification)
    await db.commit()
    return {"message": "Notification deleted successfully"}
