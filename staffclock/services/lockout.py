"""
Attempt / lockout tracker.

Counts failed location validations per (employee, date). Reaching
``settings.MAX_ATTEMPTS`` marks the day ABSENT and locks it; only an admin
re-enable clears the lock. All mutations happen on the row obtained from
:func:`lock_or_create`, so concurrent submissions for the same day are
serialized by the database and the counter never skips or exceeds the cap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import local_date_str, utc_now
from staffclock.core.config import settings
from staffclock.models.attendance import (APPROVAL_NOT_REQUIRED, STATUS_ABSENT,
                                          STATUS_PRESENT, SOURCE_SELF,
                                          AttendanceRecord)
from staffclock.services.employees import get_employee

logger = logging.getLogger(__name__)

LOCKED_REASON = "Maximum location validation attempts exceeded"


class AttemptCount(IntEnum):
    ZERO = 0
    ONE = 1
    TWO = 2
    THREE = 3


def next_attempt_count(current: int) -> AttemptCount:
    """One more failed attempt, saturating at the configured maximum."""
    return AttemptCount(min(int(current or 0) + 1, settings.MAX_ATTEMPTS))


def remaining_attempts(record: AttendanceRecord | None) -> int:
    if record is None:
        return settings.MAX_ATTEMPTS
    if record.locked:
        return 0
    return max(0, settings.MAX_ATTEMPTS - int(record.attempt_count or 0))


@dataclass
class AttemptOutcome:
    attempts: int
    remaining: int
    locked: bool
    newly_locked: bool = False


@dataclass
class AttemptStatus:
    employee_id: str
    date: str
    attempts: int
    remaining: int
    locked: bool
    status: str | None
    locked_reason: str | None = None


# ── Row access ────────────────────────────────────────────────────


async def find_record(db: AsyncSession, employee_id: int, day: str) -> AttendanceRecord | None:
    """Plain read of the day's record (no lock)."""
    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day,
        )
    )
    return result.scalar_one_or_none()


def locked_select(employee_id: int, day: str):
    return (
        select(AttendanceRecord)
        .where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def lock_record(db: AsyncSession, employee_id: int, day: str) -> AttendanceRecord | None:
    """Re-read the day's record under ``FOR UPDATE`` with fresh attribute values."""
    result = await db.execute(locked_select(employee_id, day))
    return result.scalar_one_or_none()


async def lock_record_by_id(db: AsyncSession, attendance_id: int) -> AttendanceRecord | None:
    result = await db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.id == attendance_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert


def create_if_absent(dialect_name: str, employee_id: int, day: str, values: dict[str, Any]):
    """``INSERT ... ON CONFLICT (employee_id, date) DO NOTHING``, or None when unsupported."""
    insert = _insert_for(dialect_name)
    if insert is None:
        return None
    return (
        insert(AttendanceRecord)
        .values(employee_id=employee_id, date=day, **values)
        .on_conflict_do_nothing(index_elements=["employee_id", "date"])
    )


async def lock_or_create(
    db: AsyncSession,
    employee_id: int,
    day: str,
    **defaults: Any,
) -> AttendanceRecord:
    """Return the day's record locked for update, inserting it first if absent.

    The insert is ``ON CONFLICT DO NOTHING`` on (employee_id, date): when two
    requests race to create the same day, the loser's insert is a no-op and
    both end up serialized on the same row.
    """
    record = await lock_record(db, employee_id, day)
    if record is not None:
        return record

    values: dict[str, Any] = {
        "status": STATUS_PRESENT,
        "approval_status": APPROVAL_NOT_REQUIRED,
        "source": SOURCE_SELF,
        "attempt_count": 0,
        "locked": False,
    }
    values.update(defaults)

    stmt = create_if_absent(db.get_bind().dialect.name, employee_id, day, values)
    if stmt is not None:
        await db.execute(stmt)
    else:
        db.add(AttendanceRecord(employee_id=employee_id, date=day, **values))
        await db.flush()

    record = await lock_record(db, employee_id, day)
    if record is None:  # pragma: no cover - the row was inserted above
        raise RuntimeError(f"Attendance record for {employee_id}/{day} vanished")
    return record


# ── Attempt accounting ────────────────────────────────────────────


async def record_attempt(
    db: AsyncSession,
    employee_id: int,
    day: str,
    *,
    reason: str,
    evidence: dict[str, Any] | None = None,
) -> AttemptOutcome:
    """Count one failed validation and lock the day when the cap is reached.

    Commits. A day that is already locked is left untouched.
    """
    record = await lock_or_create(db, employee_id, day)

    if record.locked:
        outcome = AttemptOutcome(attempts=record.attempt_count, remaining=0, locked=True)
        await db.commit()
        return outcome

    attempts = next_attempt_count(record.attempt_count)
    record.attempt_count = int(attempts)
    for field, value in (evidence or {}).items():
        if value is not None:
            setattr(record, field, value)

    newly_locked = attempts >= settings.MAX_ATTEMPTS
    if newly_locked:
        record.status_before_lock = record.status
        record.status = STATUS_ABSENT
        record.locked = True
        record.locked_reason = LOCKED_REASON

    outcome = AttemptOutcome(
        attempts=int(attempts),
        remaining=max(0, settings.MAX_ATTEMPTS - int(attempts)),
        locked=newly_locked,
        newly_locked=newly_locked,
    )
    await db.commit()

    if newly_locked:
        logger.warning(
            "Attendance locked for employee %s on %s after %d failed attempts (%s)",
            employee_id,
            day,
            int(attempts),
            reason,
        )
    else:
        logger.info(
            "Failed attempt %d/%d for employee %s on %s: %s",
            int(attempts),
            settings.MAX_ATTEMPTS,
            employee_id,
            day,
            reason,
        )
    return outcome


def reset_attempts(record: AttendanceRecord) -> None:
    """Successful validation: the next failure starts from one again."""
    record.attempt_count = int(AttemptCount.ZERO)


async def get_remaining_attempts(
    db: AsyncSession,
    employee_code: str,
    now: datetime | None = None,
) -> AttemptStatus:
    """Pure read of today's attempt state; never creates a record."""
    employee = await get_employee(db, employee_code)
    day = local_date_str(now or utc_now())
    record = await find_record(db, employee.id, day)
    return AttemptStatus(
        employee_id=employee.employee_code,
        date=day,
        attempts=int(record.attempt_count or 0) if record else 0,
        remaining=remaining_attempts(record),
        locked=bool(record.locked) if record else False,
        status=record.status if record else None,
        locked_reason=record.locked_reason if record else None,
    )
