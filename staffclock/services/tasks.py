"""
Task session overlay — intra-day task start/end on top of an open day.

Task check-in/out only touch ``task_start_time`` / ``task_end_time``; they
never open or close the attendance day itself.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import local_date_str, local_hhmm, utc_now
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.attendance import (APPROVAL_APPROVED,
                                          APPROVAL_NOT_REQUIRED,
                                          APPROVAL_PENDING, APPROVAL_REJECTED,
                                          AttendanceRecord)
from staffclock.services.employees import get_employee
from staffclock.services.lockout import lock_record

logger = logging.getLogger(__name__)


def ensure_task_gate(record: AttendanceRecord | None) -> AttendanceRecord:
    """Raise unless the day is started, approved (or not gated) and still open."""
    if record is None:
        raise ServiceError(ErrorCode.DAY_NOT_STARTED, "Attendance not started for today")
    if record.locked:
        raise ServiceError(
            ErrorCode.ATTENDANCE_LOCKED,
            record.locked_reason or "Attendance is locked for today",
            remaining_attempts=0,
        )
    if record.approval_status == APPROVAL_REJECTED:
        raise ServiceError(ErrorCode.ATTENDANCE_REJECTED, "Today's attendance was rejected")
    if record.approval_status == APPROVAL_PENDING:
        raise ServiceError(ErrorCode.APPROVAL_PENDING, "Clock-in is awaiting admin approval")
    if record.clock_in is None or record.approval_status not in (
        APPROVAL_APPROVED,
        APPROVAL_NOT_REQUIRED,
    ):
        raise ServiceError(ErrorCode.DAY_NOT_STARTED, "Attendance not started for today")
    if record.clock_out is not None:
        raise ServiceError(ErrorCode.DAY_ALREADY_CLOSED, "Attendance already closed for today")
    return record


def start_task_session(record: AttendanceRecord, now: datetime) -> None:
    record.task_start_time = local_hhmm(now)
    record.task_end_time = None


def end_task_session(record: AttendanceRecord, now: datetime) -> None:
    record.task_end_time = local_hhmm(now)


async def _task_transition(
    db: AsyncSession,
    employee_code: str,
    now: datetime | None,
    apply,
) -> AttendanceRecord:
    now = now or utc_now()
    employee = await get_employee(db, employee_code)
    record = await lock_record(db, employee.id, local_date_str(now))
    try:
        ensure_task_gate(record)
    except ServiceError:
        await db.rollback()
        raise
    apply(record, now)
    await db.commit()
    await db.refresh(record)
    return record


async def task_check_in(
    db: AsyncSession, employee_code: str, now: datetime | None = None
) -> AttendanceRecord:
    record = await _task_transition(db, employee_code, now, start_task_session)
    logger.info("Task started for %s at %s", employee_code, record.task_start_time)
    return record


async def task_check_out(
    db: AsyncSession, employee_code: str, now: datetime | None = None
) -> AttendanceRecord:
    record = await _task_transition(db, employee_code, now, end_task_session)
    logger.info("Task ended for %s at %s", employee_code, record.task_end_time)
    return record
