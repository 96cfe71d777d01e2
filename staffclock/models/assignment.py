"""
DailyLocationAssignment model — where and when an employee must report on a date.

Either authoritative coordinates (+ radius) or a free-text area is set.
``state == TASK_LOCATION_MARKER`` flags a task-based day, which disables
time-window enforcement.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, Float, ForeignKey, Integer, String,
                        UniqueConstraint)

from staffclock.db.base import Base

TASK_LOCATION_MARKER = "Task Location"


class DailyLocationAssignment(Base):
    __tablename__ = "daily_location_assignments"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_assignment_emp_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False, index=True)  # type: ignore[assignment]  # YYYY-MM-DD
    latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    radius: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]  # metres
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    city: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    state: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    start_time: str = Column(String(5), nullable=False, default="09:00")  # type: ignore[assignment]  # HH:MM local
    end_time: str = Column(String(5), nullable=False, default="18:00")  # type: ignore[assignment]  # HH:MM local
    assigned_by: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_task_based(self) -> bool:
        return self.state == TASK_LOCATION_MARKER

    @property
    def area_text(self) -> str:
        return (self.address or self.city or "").strip()
