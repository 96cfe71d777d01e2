"""
AdminNotification model — the inbox the admin dashboard polls.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from staffclock.db.base import Base

ATTENDANCE_APPROVAL_REQUEST = "ATTENDANCE_APPROVAL_REQUEST"
ATTENDANCE_ALERT = "ATTENDANCE_ALERT"
VEHICLE_UNASSIGNED = "VEHICLE_UNASSIGNED"
NOTIFICATION_TYPES = (ATTENDANCE_APPROVAL_REQUEST, ATTENDANCE_ALERT, VEHICLE_UNASSIGNED)


class AdminNotification(Base):
    __tablename__ = "admin_notifications"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    type: str = Column(String(40), nullable=False, index=True)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    message: str = Column(String(1000), nullable=False)  # type: ignore[assignment]
    data: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    is_read: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
