"""Admin notification inbox: create, list, mark read and delete."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.notification import (ATTENDANCE_APPROVAL_REQUEST,
                                            AdminNotification)

logger = logging.getLogger(__name__)


async def create_admin_notification(
    db: AsyncSession,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> AdminNotification:
    notification = AdminNotification(type=type, title=title, message=message, data=data or {})
    db.add(notification)
    await db.commit()
    await db.refresh(notification)
    logger.info("Admin notification %s created: %s", notification.id, title)
    return notification


async def list_notifications(
    db: AsyncSession,
    *,
    is_read: bool | None = None,
    type: str | None = None,
    limit: int = 50,
) -> list[AdminNotification]:
    query = select(AdminNotification)
    if is_read is not None:
        query = query.where(AdminNotification.is_read.is_(is_read))
    if type:
        query = query.where(AdminNotification.type == type)
    query = query.order_by(AdminNotification.created_at.desc(), AdminNotification.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def unread_count(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(AdminNotification.id)).where(AdminNotification.is_read.is_(False))
    )
    return int(result.scalar_one())


async def _get_notification(db: AsyncSession, notification_id: int) -> AdminNotification:
    notification = await db.get(AdminNotification, notification_id)
    if notification is None:
        raise ServiceError(ErrorCode.NOTIFICATION_NOT_FOUND, "Notification not found")
    return notification


async def mark_read(db: AsyncSession, notification_id: int) -> AdminNotification:
    notification = await _get_notification(db, notification_id)
    notification.is_read = True
    await db.commit()
    await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession) -> int:
    result = await db.execute(
        update(AdminNotification)
        .where(AdminNotification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    return int(result.rowcount or 0)


async def delete_notification(db: AsyncSession, notification_id: int) -> None:
    notification = await _get_notification(db, notification_id)
    await db.delete(notification)
    await db.commit()


async def remove_approval_requests(db: AsyncSession, attendance_id: int) -> int:
    """Delete the approval-request notifications that point at *attendance_id*.

    The reference lives inside the JSON payload, which is not portably
    queryable, so the candidates are filtered here.
    """
    result = await db.execute(
        select(AdminNotification).where(AdminNotification.type == ATTENDANCE_APPROVAL_REQUEST)
    )
    removed = 0
    for notification in result.scalars().all():
        if (notification.data or {}).get("attendanceId") == attendance_id:
            await db.delete(notification)
            removed += 1
    if removed:
        await db.commit()
    return removed
