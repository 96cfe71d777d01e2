"""
AttendanceRecord model — one row per (employee, calendar date).

The row is the unit of mutual exclusion for the attendance engine: every
mutation re-reads it under ``SELECT ... FOR UPDATE`` before writing.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, Float,
                        ForeignKey, Index, Integer, String, UniqueConstraint)
from staffclock.db.base import Base

# status
STATUS_PRESENT = "PRESENT"
STATUS_LATE = "LATE"
STATUS_ABSENT = "ABSENT"

# approval_status
APPROVAL_NOT_REQUIRED = "NOT_REQUIRED"
APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"

# source
SOURCE_SELF = "SELF"
SOURCE_ADMIN = "ADMIN"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
        CheckConstraint("attempt_count BETWEEN 0 AND 3", name="ck_attendance_attempt_count"),
        CheckConstraint(
            "clock_out IS NULL OR clock_in IS NULL OR clock_out >= clock_in",
            name="ck_attendance_clock_order",
        ),
        Index("ix_attendance_approval_status", "approval_status"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False, index=True)  # type: ignore[assignment]  # YYYY-MM-DD (local)

    status: str = Column(String(10), nullable=False, default=STATUS_PRESENT)  # type: ignore[assignment]
    # PRESENT | LATE | ABSENT
    approval_status: str = Column(String(20), nullable=False, default=APPROVAL_NOT_REQUIRED)  # type: ignore[assignment]
    # NOT_REQUIRED | PENDING | APPROVED | REJECTED
    source: str = Column(String(10), nullable=False, default=SOURCE_SELF)  # type: ignore[assignment]
    # SELF | ADMIN

    clock_in: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    clock_out: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    pending_check_in_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    task_start_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]  # HH:MM
    task_end_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]  # HH:MM

    # Evidence captured at submission time
    location: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    ip_address: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    device_info: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    photo: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]

    attempt_count: int = Column(Integer, nullable=False, default=0, server_default="0")  # type: ignore[assignment]
    locked: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    locked_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    status_before_lock: str | None = Column(String(10), nullable=True)  # type: ignore[assignment]

    approved_by: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    approved_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    rejected_by: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    rejected_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    approval_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]

    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
