"""Pydantic schemas for the admin notification inbox."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class NotificationRead(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] | None
    is_read: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    success: bool
    updated: int
