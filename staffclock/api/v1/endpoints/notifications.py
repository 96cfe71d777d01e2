"""
Admin notification inbox endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import CurrentUser, get_db, require_admin
from staffclock.schemas.attendance import DeleteResponse
from staffclock.schemas.notification import (MarkAllReadResponse,
                                             NotificationRead,
                                             UnreadCountResponse)
from staffclock.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    is_read: bool | None = None,
    type: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    return await notifications.list_notifications(db, is_read=is_read, type=type, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await notifications.unread_count(db))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> MarkAllReadResponse:
    updated = await notifications.mark_all_read(db)
    return MarkAllReadResponse(success=True, updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    return await notifications.mark_read(db, notification_id)


@router.delete("/{notification_id}", response_model=DeleteResponse)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> DeleteResponse:
    await notifications.delete_notification(db, notification_id)
    return DeleteResponse(success=True, message="Notification deleted")
