"""
Admin approval workflow: approve, reject and re-enable a day's attendance.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import ensure_utc, utc_now
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.attendance import (APPROVAL_APPROVED, APPROVAL_PENDING,
                                          APPROVAL_REJECTED, STATUS_PRESENT,
                                          AttendanceRecord)
from staffclock.models.employee import Employee
from staffclock.services.dispatcher import (APPROVAL_RESOLVED,
                                            SideEffectDispatcher,
                                            TransitionEvent)
from staffclock.services.lockout import lock_record_by_id, reset_attempts

logger = logging.getLogger(__name__)


async def _lock_existing(db: AsyncSession, attendance_id: int) -> AttendanceRecord:
    record = await lock_record_by_id(db, attendance_id)
    if record is None:
        raise ServiceError(ErrorCode.ATTENDANCE_NOT_FOUND, "Attendance record not found")
    return record


async def _require_pending(db: AsyncSession, record: AttendanceRecord) -> None:
    error: ServiceError | None = None
    if record.locked:
        error = ServiceError(
            ErrorCode.ATTENDANCE_LOCKED,
            record.locked_reason or "Attendance is locked",
            remaining_attempts=0,
        )
    elif record.approval_status != APPROVAL_PENDING:
        error = ServiceError(
            ErrorCode.NOT_PENDING,
            f"Attendance is not pending approval (status: {record.approval_status})",
        )
    if error is not None:
        # Release the row lock; the instance is expired afterwards
        await db.rollback()
        raise error


async def _resolved_event(
    db: AsyncSession, record: AttendanceRecord, at: datetime
) -> TransitionEvent:
    employee = await db.get(Employee, record.employee_id)
    return TransitionEvent(
        kind=APPROVAL_RESOLVED,
        attendance_id=record.id,
        employee_id=record.employee_id,
        employee_code=employee.employee_code if employee else "",
        employee_name=employee.name if employee else "",
        at=at,
    )


async def approve_attendance(
    db: AsyncSession,
    attendance_id: int,
    admin_id: str,
    *,
    dispatcher: SideEffectDispatcher,
    reason: str | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    """Stamp ``clock_in`` from the pending request and open the day."""
    now = now or utc_now()
    record = await _lock_existing(db, attendance_id)
    await _require_pending(db, record)

    record.clock_in = ensure_utc(record.pending_check_in_at) or now
    record.pending_check_in_at = None
    record.approval_status = APPROVAL_APPROVED
    record.approved_by = admin_id
    record.approved_at = now
    record.approval_reason = reason
    await db.commit()
    await db.refresh(record)

    logger.info("Attendance %s approved by %s", record.id, admin_id)
    await dispatcher.dispatch(await _resolved_event(db, record, now))
    return record


async def reject_attendance(
    db: AsyncSession,
    attendance_id: int,
    admin_id: str,
    reason: str,
    *,
    dispatcher: SideEffectDispatcher,
    now: datetime | None = None,
) -> AttendanceRecord:
    now = now or utc_now()
    if not reason or not reason.strip():
        raise ServiceError(ErrorCode.REASON_REQUIRED, "A rejection reason is required")
    record = await _lock_existing(db, attendance_id)
    await _require_pending(db, record)

    record.approval_status = APPROVAL_REJECTED
    record.rejected_by = admin_id
    record.rejected_at = now
    record.approval_reason = reason.strip()
    await db.commit()
    await db.refresh(record)

    logger.info("Attendance %s rejected by %s: %s", record.id, admin_id, record.approval_reason)
    await dispatcher.dispatch(await _resolved_event(db, record, now))
    return record


async def re_enable_attendance(
    db: AsyncSession,
    attendance_id: int,
    admin_id: str,
    now: datetime | None = None,
) -> AttendanceRecord:
    """Undo a lockout and/or a rejection so the employee can submit again.

    Unlocking restores the status the day had before the lock and clears
    the attempt counter without touching approval. A rejected day goes
    back to ``PENDING`` with the pending request cleared, so the next daily
    clock-in re-submits.
    """
    record = await _lock_existing(db, attendance_id)
    was_locked = bool(record.locked)
    was_rejected = record.approval_status == APPROVAL_REJECTED
    if not (was_locked or was_rejected):
        await db.rollback()
        raise ServiceError(
            ErrorCode.NOT_REENABLEABLE,
            "Only locked or rejected attendance can be re-enabled",
        )

    if was_locked:
        record.locked = False
        record.locked_reason = None
        record.status = record.status_before_lock or STATUS_PRESENT
        record.status_before_lock = None
        reset_attempts(record)
    if was_rejected:
        record.approval_status = APPROVAL_PENDING
        record.rejected_by = None
        record.rejected_at = None
        record.approval_reason = None
        record.pending_check_in_at = None
    await db.commit()
    await db.refresh(record)

    logger.info(
        "Attendance %s re-enabled by %s (unlocked=%s, unrejected=%s)",
        record.id,
        admin_id,
        was_locked,
        was_rejected,
    )
    return record


async def list_pending_approvals(db: AsyncSession) -> list[tuple[AttendanceRecord, Employee]]:
    """Pending clock-in requests, oldest first."""
    result = await db.execute(
        select(AttendanceRecord, Employee)
        .join(Employee, Employee.id == AttendanceRecord.employee_id)
        .where(AttendanceRecord.approval_status == APPROVAL_PENDING)
        .order_by(AttendanceRecord.pending_check_in_at, AttendanceRecord.id)
    )
    return [(row[0], row[1]) for row in result.all()]
