"""
Attendance record state machine.

Every write to an :class:`AttendanceRecord` goes through this module. Two
entry paths share one set of transitions:

* the daily path (:func:`daily_clock_in` / :func:`daily_clock_out`), where
  clock-in is a request that an admin approves when
  ``settings.REQUIRE_CLOCK_IN_APPROVAL`` is on;
* the direct path (:func:`submit_attendance`), driven by a
  :class:`ClockAction` and a ``source``. ``SELF`` submissions are checked by
  the location validator, ``ADMIN`` entries are trusted as-is.

Writes happen on the row returned by :func:`lockout.lock_or_create`, and
side effects are dispatched only after the transition has been committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import ensure_utc, local_date_str, utc_now
from staffclock.core.config import settings
from staffclock.core.exceptions import (ATTEMPT_BOUNDED_CODES, ErrorCode,
                                        ServiceError)
from staffclock.models.attendance import (APPROVAL_APPROVED,
                                          APPROVAL_NOT_REQUIRED,
                                          APPROVAL_PENDING, APPROVAL_REJECTED,
                                          SOURCE_ADMIN, SOURCE_SELF,
                                          STATUS_ABSENT, STATUS_PRESENT,
                                          AttendanceRecord)
from staffclock.models.employee import Employee
from staffclock.services import lockout
from staffclock.services.dispatcher import (APPROVAL_REQUESTED,
                                            APPROVAL_RESOLVED, CLOCKED_OUT,
                                            SideEffectDispatcher,
                                            TransitionEvent)
from staffclock.services.employees import get_employee
from staffclock.services.geocoding import human_readable_location
from staffclock.services.location import (Coordinates, LocationValidator,
                                          ValidationResult, get_assignment)
from staffclock.services.tasks import (end_task_session, ensure_task_gate,
                                       start_task_session)

logger = logging.getLogger(__name__)


class ClockAction(str, Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"
    TASK_CHECKOUT = "task-checkout"
    IMPLICIT = "implicit"


class AttendanceState(str, Enum):
    NONE = "NONE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    REJECTED = "REJECTED"
    CLOCKED_IN = "CLOCKED_IN"
    CLOCKED_OUT = "CLOCKED_OUT"
    LOCKED = "LOCKED"


def derive_state(record: AttendanceRecord | None) -> AttendanceState:
    if record is None:
        return AttendanceState.NONE
    if record.locked:
        return AttendanceState.LOCKED
    if record.approval_status == APPROVAL_REJECTED:
        return AttendanceState.REJECTED
    if record.clock_out is not None:
        return AttendanceState.CLOCKED_OUT
    if record.clock_in is not None:
        return AttendanceState.CLOCKED_IN
    if record.approval_status == APPROVAL_PENDING:
        return AttendanceState.PENDING_APPROVAL
    return AttendanceState.NONE


@dataclass
class Evidence:
    """What the client reported alongside a submission."""

    coordinates: Coordinates | None = None
    location_text: str | None = None
    ip_address: str | None = None
    device_info: str | None = None
    photo: str | None = None

    def attempt_columns(self) -> dict[str, Any]:
        """Columns worth keeping on the record even for a failed attempt."""
        columns: dict[str, Any] = {
            "ip_address": self.ip_address,
            "device_info": self.device_info,
        }
        if self.coordinates is not None:
            columns["latitude"] = self.coordinates.latitude
            columns["longitude"] = self.coordinates.longitude
        return columns


# ── Work hours ────────────────────────────────────────────────────


def format_minutes(minutes: int) -> str:
    """``135`` → ``"2h 15m"``."""
    minutes = max(0, int(minutes))
    return f"{minutes // 60}h {minutes % 60}m"


@dataclass
class WorkSummary:
    total_minutes: int
    worked_minutes: int
    overtime_minutes: int

    @property
    def work_hours(self) -> str:
        return format_minutes(self.total_minutes)

    @property
    def overtime(self) -> str:
        return format_minutes(self.overtime_minutes)


def calculate_work(clock_in: datetime | None, clock_out: datetime | None) -> WorkSummary | None:
    """Split the shift into standard and overtime minutes."""
    if clock_in is None or clock_out is None:
        return None
    total = int((ensure_utc(clock_out) - ensure_utc(clock_in)).total_seconds() // 60)  # type: ignore[operator]
    total = max(0, total)
    standard = settings.STANDARD_WORK_MINUTES
    return WorkSummary(
        total_minutes=total,
        worked_minutes=min(total, standard),
        overtime_minutes=max(0, total - standard),
    )


# ── Results ───────────────────────────────────────────────────────


@dataclass
class ClockInResult:
    record: AttendanceRecord
    pending: bool
    already_submitted: bool = False


@dataclass
class ClockOutResult:
    record: AttendanceRecord
    work: WorkSummary | None
    already_closed: bool = False


@dataclass
class DailyStatus:
    employee_id: str
    employee_name: str
    date: str
    state: AttendanceState
    has_assignment: bool
    remaining_attempts: int
    record: AttendanceRecord | None = None
    work: WorkSummary | None = None
    flags: dict[str, bool] = field(default_factory=dict)


# ── Guards ────────────────────────────────────────────────────────


def _locked_error(record: AttendanceRecord) -> ServiceError:
    return ServiceError(
        ErrorCode.ATTENDANCE_LOCKED,
        record.locked_reason or "Attendance is locked for today",
        remaining_attempts=0,
    )


def _guard_self_entry(record: AttendanceRecord | None) -> None:
    """Refuse a SELF check-in the day's approval state does not allow."""
    if record is None:
        return
    if record.locked:
        raise _locked_error(record)
    if record.approval_status == APPROVAL_REJECTED:
        raise ServiceError(ErrorCode.ATTENDANCE_REJECTED, "Today's attendance was rejected")
    if record.approval_status == APPROVAL_PENDING and record.clock_in is None:
        raise ServiceError(ErrorCode.APPROVAL_PENDING, "Clock-in is awaiting admin approval")
    admin_prepared = record.source == SOURCE_ADMIN and record.clock_in is None
    if record.clock_out is not None and not admin_prepared:
        raise ServiceError(ErrorCode.DAY_ALREADY_CLOSED, "Attendance already closed for today")


def _apply_check_out(record: AttendanceRecord, now: datetime) -> bool:
    """Close the day. Returns ``False`` when it was already closed."""
    if record.locked:
        raise _locked_error(record)
    if record.clock_out is not None:
        return False
    if record.approval_status == APPROVAL_REJECTED:
        raise ServiceError(ErrorCode.ATTENDANCE_REJECTED, "Today's attendance was rejected")
    if record.clock_in is None:
        if record.approval_status == APPROVAL_PENDING:
            raise ServiceError(ErrorCode.APPROVAL_PENDING, "Clock-in is awaiting admin approval")
        raise ServiceError(
            ErrorCode.CANNOT_CHECKOUT_WITHOUT_CHECKIN,
            "Cannot check out without checking in first",
        )
    clock_in = ensure_utc(record.clock_in)
    record.clock_out = max(now, clock_in)  # type: ignore[type-var]
    end_task_session(record, now)
    return True


def _admin_resolves_pending(record: AttendanceRecord, actor_id: str | None, now: datetime) -> bool:
    """An admin entry on a pending day approves it."""
    if record.approval_status != APPROVAL_PENDING:
        return False
    record.approval_status = APPROVAL_APPROVED
    record.approved_by = actor_id
    record.approved_at = now
    if record.clock_in is None and record.pending_check_in_at is not None:
        record.clock_in = ensure_utc(record.pending_check_in_at)
    record.pending_check_in_at = None
    return True


def _apply_check_in(
    record: AttendanceRecord, *, source: str, status: str, now: datetime, actor_id: str | None
) -> bool:
    if source == SOURCE_SELF:
        _guard_self_entry(record)
        if record.source == SOURCE_ADMIN and record.clock_in is None:
            record.clock_out = None
            record.source = SOURCE_SELF
        if record.clock_in is None:
            record.clock_in = now
            record.status = status
        start_task_session(record, now)
        return False

    resolved = _admin_resolves_pending(record, actor_id, now)
    if record.clock_in is None:
        record.clock_in = now
        record.clock_out = None
        record.source = SOURCE_ADMIN
    record.status = status
    start_task_session(record, now)
    return resolved


def _apply_implicit(
    record: AttendanceRecord, *, source: str, status: str, now: datetime, actor_id: str | None
) -> bool:
    resolved = False
    if source == SOURCE_SELF:
        _guard_self_entry(record)
    else:
        resolved = _admin_resolves_pending(record, actor_id, now)
    if record.clock_in is None and status != STATUS_ABSENT:
        record.clock_in = now
        record.clock_out = None
        record.source = source
    record.status = status
    return resolved


def _capture(record: AttendanceRecord, evidence: Evidence, location: str | None) -> None:
    if location:
        record.location = location
    if evidence.coordinates is not None:
        record.latitude = evidence.coordinates.latitude
        record.longitude = evidence.coordinates.longitude
    if evidence.ip_address:
        record.ip_address = evidence.ip_address
    if evidence.device_info:
        record.device_info = evidence.device_info
    if evidence.photo:
        record.photo = evidence.photo


def _event(
    kind: str, record: AttendanceRecord, employee: Employee, at: datetime, **data: Any
) -> TransitionEvent:
    return TransitionEvent(
        kind=kind,
        attendance_id=record.id,
        employee_id=employee.id,
        employee_code=employee.employee_code,
        employee_name=employee.name,
        at=at,
        data={k: v for k, v in data.items() if v is not None},
    )


async def _validate_position(
    db: AsyncSession,
    employee: Employee,
    evidence: Evidence,
    validator: LocationValidator,
    day: str,
    now: datetime,
) -> ValidationResult:
    """Run the validator; count policy failures against today's attempts."""
    result = await validator.validate_for(db, employee, evidence.coordinates, now=now)  # type: ignore[arg-type]
    if result.is_valid:
        return result

    code = result.code or ErrorCode.LOCATION_MISMATCH
    if code not in ATTEMPT_BOUNDED_CODES:
        raise ServiceError(code, result.details, data=result.as_dict())

    outcome = await lockout.record_attempt(
        db,
        employee.id,
        day,
        reason=f"{code.value}: {result.details}",
        evidence=evidence.attempt_columns(),
    )
    if outcome.newly_locked:
        raise ServiceError(
            ErrorCode.MAX_ATTEMPTS_EXCEEDED,
            f"{result.details}. Maximum attempts ({settings.MAX_ATTEMPTS}) exceeded; "
            "attendance marked ABSENT for today.",
            remaining_attempts=0,
            data=result.as_dict(),
        )
    if outcome.locked:
        raise ServiceError(
            ErrorCode.ATTENDANCE_LOCKED,
            lockout.LOCKED_REASON,
            remaining_attempts=0,
        )
    raise ServiceError(
        code,
        f"{result.details}. Attempt {outcome.attempts}/{settings.MAX_ATTEMPTS}, "
        f"{outcome.remaining} attempt(s) remaining.",
        remaining_attempts=outcome.remaining,
        data=result.as_dict(),
    )


def _check_coordinates(coords: Coordinates | None) -> None:
    if coords is not None and not coords.is_usable:
        raise ServiceError(ErrorCode.INVALID_COORDINATES, "Reported coordinates are invalid")


# ── Daily path ────────────────────────────────────────────────────


async def daily_clock_in(
    db: AsyncSession,
    employee_code: str,
    evidence: Evidence,
    *,
    validator: LocationValidator,
    dispatcher: SideEffectDispatcher,
    now: datetime | None = None,
) -> ClockInResult:
    """Request today's clock-in.

    With approval required the day stays un-started (``clock_in`` empty)
    and an approval request goes to the admin inbox; the approval later
    stamps ``clock_in`` from ``pending_check_in_at``. Repeating the call
    while the request is pending, or after the day started, is a no-op.
    """
    now = now or utc_now()
    day = local_date_str(now)
    employee = await get_employee(db, employee_code)

    existing = await lockout.find_record(db, employee.id, day)
    if existing is not None:
        if existing.locked:
            raise _locked_error(existing)
        if existing.clock_in is not None:
            return ClockInResult(existing, pending=False, already_submitted=True)
        if existing.approval_status == APPROVAL_REJECTED:
            raise ServiceError(ErrorCode.ATTENDANCE_REJECTED, "Today's attendance was rejected")
        if existing.approval_status == APPROVAL_PENDING and existing.pending_check_in_at:
            return ClockInResult(existing, pending=True, already_submitted=True)

    _check_coordinates(evidence.coordinates)
    requires_approval = settings.REQUIRE_CLOCK_IN_APPROVAL
    # Without an admin review the position check is the only gate
    if not requires_approval and evidence.coordinates is None:
        raise ServiceError(
            ErrorCode.MISSING_COORDINATES,
            "Coordinates are required to check in",
        )
    validated = False
    location = evidence.location_text
    if evidence.coordinates is not None:
        await _validate_position(db, employee, evidence, validator, day, now)
        validated = True
        if not location:
            location = await human_readable_location(
                validator.geocoder, evidence.coordinates.latitude, evidence.coordinates.longitude
            )

    record = await lockout.lock_or_create(db, employee.id, day)

    # Re-check under the lock; another request may have won the race
    if record.locked:
        error = _locked_error(record)
        await db.rollback()
        raise error
    if record.clock_in is not None or (
        record.approval_status == APPROVAL_PENDING and record.pending_check_in_at
    ):
        await db.commit()
        return ClockInResult(record, pending=record.clock_in is None, already_submitted=True)
    if record.approval_status == APPROVAL_REJECTED:
        await db.rollback()
        raise ServiceError(ErrorCode.ATTENDANCE_REJECTED, "Today's attendance was rejected")

    _capture(record, evidence, location or "Field Location")
    if validated:
        lockout.reset_attempts(record)
    record.source = SOURCE_SELF
    record.clock_out = None
    if requires_approval:
        record.approval_status = APPROVAL_PENDING
        record.pending_check_in_at = now
    else:
        record.approval_status = APPROVAL_NOT_REQUIRED
        record.clock_in = now
    await db.commit()
    await db.refresh(record)

    logger.info(
        "Clock-in %s for %s on %s",
        "requested" if requires_approval else "recorded",
        employee.employee_code,
        day,
    )
    if requires_approval:
        await dispatcher.dispatch(
            _event(
                APPROVAL_REQUESTED,
                record,
                employee,
                now,
                checkInTime=now.isoformat(),
                location=record.location,
                photo=record.photo,
                ipAddress=record.ip_address,
                deviceInfo=record.device_info,
            )
        )
    return ClockInResult(record, pending=requires_approval)


async def daily_clock_out(
    db: AsyncSession,
    employee_code: str,
    *,
    dispatcher: SideEffectDispatcher,
    now: datetime | None = None,
) -> ClockOutResult:
    now = now or utc_now()
    day = local_date_str(now)
    employee = await get_employee(db, employee_code)

    record = await lockout.lock_record(db, employee.id, day)
    if record is None:
        raise ServiceError(
            ErrorCode.CANNOT_CHECKOUT_WITHOUT_CHECKIN,
            "No attendance record found for today",
        )
    try:
        changed = _apply_check_out(record, now)
    except ServiceError:
        await db.rollback()
        raise
    await db.commit()
    await db.refresh(record)

    work = calculate_work(record.clock_in, record.clock_out)
    if changed:
        logger.info("Clock-out recorded for %s on %s", employee.employee_code, day)
        await dispatcher.dispatch(
            _event(
                CLOCKED_OUT,
                record,
                employee,
                ensure_utc(record.clock_out) or now,
                workHours=work.work_hours if work else None,
            )
        )
    return ClockOutResult(record, work=work, already_closed=not changed)


# ── Direct path ───────────────────────────────────────────────────


async def submit_attendance(
    db: AsyncSession,
    employee_code: str,
    action: ClockAction = ClockAction.IMPLICIT,
    *,
    evidence: Evidence,
    source: str = SOURCE_SELF,
    status: str = STATUS_PRESENT,
    actor_id: str | None = None,
    validator: LocationValidator,
    dispatcher: SideEffectDispatcher,
    now: datetime | None = None,
) -> AttendanceRecord:
    """Apply *action* to today's record without the approval gate.

    ``SELF`` check-ins (explicit or implicit) must carry coordinates and
    pass the location validator; ``ADMIN`` entries skip it. A reported
    ``(0, 0)`` is rejected for ``SELF`` and ignored for ``ADMIN``.
    """
    now = now or utc_now()
    day = local_date_str(now)
    employee = await get_employee(db, employee_code)
    is_admin = source == SOURCE_ADMIN

    existing = await lockout.find_record(db, employee.id, day)
    if existing is not None and existing.locked:
        raise _locked_error(existing)

    coords = evidence.coordinates
    if coords is not None and coords.is_well_formed and coords.is_placeholder and is_admin:
        evidence.coordinates = coords = None
    _check_coordinates(coords)

    validated = False
    if not is_admin and action in (ClockAction.CHECK_IN, ClockAction.IMPLICIT):
        if coords is None:
            raise ServiceError(
                ErrorCode.MISSING_COORDINATES,
                "Coordinates are required to check in",
            )
        _guard_self_entry(existing)
        await _validate_position(db, employee, evidence, validator, day, now)
        validated = True

    location = evidence.location_text
    if not location and coords is not None:
        location = await human_readable_location(validator.geocoder, coords.latitude, coords.longitude)

    record = await lockout.lock_or_create(db, employee.id, day, source=source, status=status)
    resolved = False
    closed = False
    try:
        if record.locked:
            raise _locked_error(record)
        if action is ClockAction.CHECK_IN:
            resolved = _apply_check_in(
                record, source=source, status=status, now=now, actor_id=actor_id
            )
        elif action is ClockAction.CHECK_OUT:
            closed = _apply_check_out(record, now)
        elif action is ClockAction.TASK_CHECKOUT:
            ensure_task_gate(record)
            end_task_session(record, now)
        elif action is ClockAction.IMPLICIT:
            resolved = _apply_implicit(
                record, source=source, status=status, now=now, actor_id=actor_id
            )
        else:  # pragma: no cover - enum is exhaustive
            raise ValueError(f"Unsupported action {action!r}")
    except ServiceError:
        await db.rollback()
        raise

    _capture(record, evidence, location)
    if validated:
        lockout.reset_attempts(record)
    await db.commit()
    await db.refresh(record)

    logger.info(
        "Attendance %s (%s) recorded for %s on %s",
        action.value,
        source,
        employee.employee_code,
        day,
    )
    if resolved:
        await dispatcher.dispatch(_event(APPROVAL_RESOLVED, record, employee, now))
    if closed:
        work = calculate_work(record.clock_in, record.clock_out)
        await dispatcher.dispatch(
            _event(
                CLOCKED_OUT,
                record,
                employee,
                ensure_utc(record.clock_out) or now,
                workHours=work.work_hours if work else None,
            )
        )
    return record


# ── Reads ─────────────────────────────────────────────────────────


async def get_daily_status(
    db: AsyncSession,
    employee_code: str,
    now: datetime | None = None,
) -> DailyStatus:
    now = now or utc_now()
    day = local_date_str(now)
    employee = await get_employee(db, employee_code)
    record = await lockout.find_record(db, employee.id, day)
    assignment = await get_assignment(db, employee.id, day)
    state = derive_state(record)

    return DailyStatus(
        employee_id=employee.employee_code,
        employee_name=employee.name,
        date=day,
        state=state,
        has_assignment=assignment is not None,
        remaining_attempts=lockout.remaining_attempts(record),
        record=record,
        work=calculate_work(record.clock_in, record.clock_out) if record else None,
        flags={
            "can_clock_in": state is AttendanceState.NONE,
            "can_clock_out": state is AttendanceState.CLOCKED_IN,
            "can_start_task": state is AttendanceState.CLOCKED_IN
            and record is not None
            and record.approval_status in (APPROVAL_APPROVED, APPROVAL_NOT_REQUIRED),
        },
    )


async def list_attendance(
    db: AsyncSession,
    *,
    date: str | None = None,
    employee_code: str | None = None,
    status: str | None = None,
    approval_status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[tuple[AttendanceRecord, Employee]], int]:
    """Admin listing of records joined with their employee, newest day first."""
    query = select(AttendanceRecord, Employee).join(
        Employee, Employee.id == AttendanceRecord.employee_id
    )
    if date:
        query = query.where(AttendanceRecord.date == date)
    if employee_code:
        query = query.where(Employee.employee_code == employee_code)
    if status:
        query = query.where(AttendanceRecord.status == status)
    if approval_status:
        query = query.where(AttendanceRecord.approval_status == approval_status)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = int(total_result.scalar_one())

    page = max(1, page)
    result = await db.execute(
        query.order_by(AttendanceRecord.date.desc(), AttendanceRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()], total
