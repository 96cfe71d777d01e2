"""
Attendance state machine tests.

Each service call runs in its own session (``run`` fixture), like separate
requests hitting the API.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from staffclock.core.clock import ensure_utc
from staffclock.core.config import settings
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.attendance import (APPROVAL_APPROVED,
                                          APPROVAL_NOT_REQUIRED,
                                          APPROVAL_PENDING, APPROVAL_REJECTED,
                                          SOURCE_ADMIN, SOURCE_SELF,
                                          STATUS_ABSENT, STATUS_LATE,
                                          STATUS_PRESENT, AttendanceRecord)
from staffclock.models.notification import ATTENDANCE_APPROVAL_REQUEST
from staffclock.services import (approvals, assignments, attendance, lockout,
                                 notifications)
from staffclock.services.attendance import (AttendanceState, ClockAction,
                                            Evidence, calculate_work,
                                            derive_state, format_minutes)
from staffclock.services.location import Coordinates

from conftest import ADMIN_ID, PINNED_DAY, PINNED_NOW

SITE = Coordinates(12.9, 77.6)
FAR = Coordinates(12.95, 77.6)  # ~5.5 km north


@pytest.fixture
async def engineer(make_employee, make_assignment):
    emp = await make_employee("FE-100", "Ravi Kumar")
    await make_assignment(emp, latitude=SITE.latitude, longitude=SITE.longitude, radius=50)
    return emp


@pytest.fixture
def submit(run, validator, dispatcher):
    async def _submit(code, action=ClockAction.IMPLICIT, coords=SITE, now=PINNED_NOW, **kwargs):
        return await run(
            attendance.submit_attendance,
            code,
            action,
            evidence=Evidence(coordinates=coords, ip_address="10.0.0.5", device_info="pytest"),
            validator=validator,
            dispatcher=dispatcher,
            now=now,
            **kwargs,
        )

    return _submit


@pytest.fixture
def clock_in(run, validator, dispatcher):
    async def _clock_in(code, coords=SITE, now=PINNED_NOW):
        return await run(
            attendance.daily_clock_in,
            code,
            Evidence(coordinates=coords),
            validator=validator,
            dispatcher=dispatcher,
            now=now,
        )

    return _clock_in


@pytest.fixture
def clock_out(run, dispatcher):
    async def _clock_out(code, now=PINNED_NOW):
        return await run(attendance.daily_clock_out, code, dispatcher=dispatcher, now=now)

    return _clock_out


async def _record_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count(AttendanceRecord.id)))
        return int(result.scalar_one())


# ── Pure helpers ────────────────────────────────────────────────────
def test_format_minutes():
    assert format_minutes(135) == "2h 15m"
    assert format_minutes(-5) == "0h 0m"


def test_calculate_work_splits_overtime():
    start = datetime(2026, 3, 2, 3, 30, tzinfo=timezone.utc)
    work = calculate_work(start, start + timedelta(hours=9, minutes=15))
    assert work.total_minutes == 555
    assert work.worked_minutes == 480
    assert work.overtime == "1h 15m"
    assert calculate_work(start, None) is None


def test_derive_state_precedence():
    record = AttendanceRecord(approval_status=APPROVAL_PENDING, locked=False)
    assert derive_state(None) is AttendanceState.NONE
    assert derive_state(record) is AttendanceState.PENDING_APPROVAL
    record.clock_in = PINNED_NOW
    assert derive_state(record) is AttendanceState.CLOCKED_IN
    record.clock_out = PINNED_NOW
    assert derive_state(record) is AttendanceState.CLOCKED_OUT
    record.approval_status = APPROVAL_REJECTED
    assert derive_state(record) is AttendanceState.REJECTED
    record.locked = True
    assert derive_state(record) is AttendanceState.LOCKED


# ── Daily path ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_daily_clock_in_is_idempotent(engineer, clock_in, run, dispatcher, session_factory):
    first = await clock_in(engineer.employee_code)
    assert first.pending is True
    assert first.already_submitted is False
    assert first.record.clock_in is None
    assert ensure_utc(first.record.pending_check_in_at) == PINNED_NOW

    second = await clock_in(engineer.employee_code, now=PINNED_NOW + timedelta(minutes=2))
    assert second.pending is True
    assert second.already_submitted is True
    assert second.record.id == first.record.id
    assert ensure_utc(second.record.pending_check_in_at) == PINNED_NOW

    await run(approvals.approve_attendance, first.record.id, ADMIN_ID, dispatcher=dispatcher)
    third = await clock_in(engineer.employee_code, now=PINNED_NOW + timedelta(minutes=5))
    assert third.pending is False
    assert third.already_submitted is True
    assert ensure_utc(third.record.clock_in) == PINNED_NOW

    assert await _record_count(session_factory) == 1


@pytest.mark.asyncio
async def test_clock_in_request_notifies_admin(engineer, clock_in, run):
    result = await clock_in(engineer.employee_code)
    inbox = await run(notifications.list_notifications, type=ATTENDANCE_APPROVAL_REQUEST)
    assert len(inbox) == 1
    assert inbox[0].title == "Attendance Approval Required"
    assert inbox[0].data["attendanceId"] == result.record.id
    assert inbox[0].data["employeeId"] == "FE-100"


@pytest.mark.asyncio
async def test_clock_in_without_approval_gate(engineer, clock_in, run, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_CLOCK_IN_APPROVAL", False)
    result = await clock_in(engineer.employee_code)
    assert result.pending is False
    assert result.record.approval_status == APPROVAL_NOT_REQUIRED
    assert ensure_utc(result.record.clock_in) == PINNED_NOW
    assert await run(notifications.list_notifications) == []


@pytest.mark.asyncio
async def test_clock_in_without_approval_requires_coordinates(
    engineer, clock_in, monkeypatch, session_factory
):
    """With no admin review a clock-in without a position never opens the day."""
    monkeypatch.setattr(settings, "REQUIRE_CLOCK_IN_APPROVAL", False)
    with pytest.raises(ServiceError) as exc:
        await clock_in(engineer.employee_code, coords=None)
    assert exc.value.code is ErrorCode.MISSING_COORDINATES
    assert await _record_count(session_factory) == 0


@pytest.mark.asyncio
async def test_approve_stamps_requested_time(engineer, clock_in, run, dispatcher):
    request = await clock_in(engineer.employee_code)
    later = PINNED_NOW + timedelta(minutes=20)
    record = await run(
        approvals.approve_attendance, request.record.id, ADMIN_ID, dispatcher=dispatcher, now=later
    )
    assert record.approval_status == APPROVAL_APPROVED
    assert ensure_utc(record.clock_in) == PINNED_NOW
    assert record.pending_check_in_at is None
    assert record.approved_by == ADMIN_ID
    assert ensure_utc(record.approved_at) == later
    # the approval request leaves the inbox once resolved
    assert await run(notifications.list_notifications, type=ATTENDANCE_APPROVAL_REQUEST) == []

    with pytest.raises(ServiceError) as exc:
        await run(approvals.approve_attendance, request.record.id, ADMIN_ID, dispatcher=dispatcher)
    assert exc.value.code is ErrorCode.NOT_PENDING


@pytest.mark.asyncio
async def test_approve_unknown_record(run, dispatcher):
    with pytest.raises(ServiceError) as exc:
        await run(approvals.approve_attendance, 424242, ADMIN_ID, dispatcher=dispatcher)
    assert exc.value.code is ErrorCode.ATTENDANCE_NOT_FOUND
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_reject_then_re_enable(engineer, clock_in, run, dispatcher):
    request = await clock_in(engineer.employee_code)

    with pytest.raises(ServiceError) as exc:
        await run(approvals.reject_attendance, request.record.id, ADMIN_ID, "  ", dispatcher=dispatcher)
    assert exc.value.code is ErrorCode.REASON_REQUIRED

    rejected = await run(
        approvals.reject_attendance, request.record.id, ADMIN_ID, "Photo unclear", dispatcher=dispatcher
    )
    assert rejected.approval_status == APPROVAL_REJECTED
    assert rejected.approval_reason == "Photo unclear"
    assert rejected.rejected_by == ADMIN_ID

    with pytest.raises(ServiceError) as exc:
        await clock_in(engineer.employee_code)
    assert exc.value.code is ErrorCode.ATTENDANCE_REJECTED

    reopened = await run(approvals.re_enable_attendance, request.record.id, ADMIN_ID)
    assert reopened.approval_status == APPROVAL_PENDING
    assert reopened.pending_check_in_at is None
    assert reopened.rejected_by is None

    later = PINNED_NOW + timedelta(minutes=30)
    again = await clock_in(engineer.employee_code, now=later)
    assert again.pending is True
    assert again.already_submitted is False
    assert ensure_utc(again.record.pending_check_in_at) == later


@pytest.mark.asyncio
async def test_re_enable_requires_locked_or_rejected(engineer, clock_in, run):
    request = await clock_in(engineer.employee_code)
    with pytest.raises(ServiceError) as exc:
        await run(approvals.re_enable_attendance, request.record.id, ADMIN_ID)
    assert exc.value.code is ErrorCode.NOT_REENABLEABLE


@pytest.mark.asyncio
async def test_re_enable_restores_status_before_lock(engineer, run, geocoder, fetch_record):
    """A day marked LATE before the lockout comes back LATE, not PRESENT."""
    await run(
        assignments.assign_daily_location,
        engineer.employee_code,
        assignments.AssignmentInput(date=PINNED_DAY, task_based=True, start_time="08:00"),
        ADMIN_ID,
        geocoder=geocoder,
        now=PINNED_NOW,
    )
    assert (await fetch_record(engineer)).status == STATUS_LATE

    for _ in range(3):
        await run(lockout.record_attempt, engineer.id, PINNED_DAY, reason="LOCATION_MISMATCH")
    locked = await fetch_record(engineer)
    assert locked.locked is True
    assert locked.status == STATUS_ABSENT
    assert locked.status_before_lock == STATUS_LATE

    reopened = await run(approvals.re_enable_attendance, locked.id, ADMIN_ID)
    assert reopened.locked is False
    assert reopened.status == STATUS_LATE
    assert reopened.status_before_lock is None


@pytest.mark.asyncio
async def test_pending_approvals_listing(engineer, make_employee, make_assignment, clock_in, run):
    other = await make_employee("FE-101", "Meera Iyer")
    await make_assignment(other, latitude=SITE.latitude, longitude=SITE.longitude, radius=50)
    await clock_in(engineer.employee_code)
    await clock_in(other.employee_code, now=PINNED_NOW + timedelta(minutes=1))

    rows = await run(approvals.list_pending_approvals)
    assert [employee.employee_code for _, employee in rows] == ["FE-100", "FE-101"]


@pytest.mark.asyncio
async def test_clock_out_after_approval(engineer, clock_in, clock_out, run, dispatcher):
    request = await clock_in(engineer.employee_code)
    await run(approvals.approve_attendance, request.record.id, ADMIN_ID, dispatcher=dispatcher)

    evening = PINNED_NOW + timedelta(hours=9, minutes=15)
    result = await clock_out(engineer.employee_code, now=evening)
    assert result.already_closed is False
    assert ensure_utc(result.record.clock_out) == evening
    assert result.work.work_hours == "9h 15m"
    assert result.work.overtime_minutes == 75
    assert result.record.task_end_time == "18:20"

    repeat = await clock_out(engineer.employee_code, now=evening + timedelta(minutes=5))
    assert repeat.already_closed is True
    assert ensure_utc(repeat.record.clock_out) == evening


@pytest.mark.asyncio
async def test_clock_out_sequencing(engineer, clock_in, clock_out):
    with pytest.raises(ServiceError) as exc:
        await clock_out(engineer.employee_code)
    assert exc.value.code is ErrorCode.CANNOT_CHECKOUT_WITHOUT_CHECKIN

    await clock_in(engineer.employee_code)
    with pytest.raises(ServiceError) as exc:
        await clock_out(engineer.employee_code)
    assert exc.value.code is ErrorCode.APPROVAL_PENDING


@pytest.mark.asyncio
async def test_clock_in_rejects_placeholder_coordinates(engineer, clock_in, session_factory):
    with pytest.raises(ServiceError) as exc:
        await clock_in(engineer.employee_code, coords=Coordinates(0.0, 0.0))
    assert exc.value.code is ErrorCode.INVALID_COORDINATES
    assert await _record_count(session_factory) == 0


# ── Lockout through submissions ─────────────────────────────────────
@pytest.mark.asyncio
async def test_failed_validation_reports_remaining_attempts(engineer, submit, fetch_record):
    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, coords=FAR)
    assert exc.value.code is ErrorCode.LOCATION_MISMATCH
    assert exc.value.remaining_attempts == 2
    assert "Attempt 1/3" in exc.value.details
    assert exc.value.data["confidence"] == "none"

    record = await fetch_record(engineer)
    assert record.attempt_count == 1
    assert record.clock_in is None
    assert record.latitude == FAR.latitude


@pytest.mark.asyncio
async def test_lockout_is_monotonic_and_terminal(engineer, submit, clock_in, clock_out, fetch_record):
    for expected in (1, 2):
        with pytest.raises(ServiceError) as exc:
            await submit(engineer.employee_code, coords=FAR)
        assert exc.value.code is ErrorCode.LOCATION_MISMATCH
        assert (await fetch_record(engineer)).attempt_count == expected

    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, coords=FAR)
    assert exc.value.code is ErrorCode.MAX_ATTEMPTS_EXCEEDED
    assert exc.value.remaining_attempts == 0

    record = await fetch_record(engineer)
    assert record.locked is True
    assert record.status == STATUS_ABSENT
    assert record.attempt_count == 3

    # Every later submission is refused, even from the right place
    for action in ClockAction:
        with pytest.raises(ServiceError) as exc:
            await submit(engineer.employee_code, action, coords=SITE)
        assert exc.value.code is ErrorCode.ATTENDANCE_LOCKED
    with pytest.raises(ServiceError) as exc:
        await clock_in(engineer.employee_code)
    assert exc.value.code is ErrorCode.ATTENDANCE_LOCKED
    with pytest.raises(ServiceError) as exc:
        await clock_out(engineer.employee_code)
    assert exc.value.code is ErrorCode.ATTENDANCE_LOCKED

    assert (await fetch_record(engineer)).attempt_count == 3


@pytest.mark.asyncio
async def test_success_resets_attempts(engineer, submit, fetch_record):
    for _ in range(2):
        with pytest.raises(ServiceError):
            await submit(engineer.employee_code, coords=FAR)
    assert (await fetch_record(engineer)).attempt_count == 2

    record = await submit(engineer.employee_code, ClockAction.CHECK_IN)
    assert record.attempt_count == 0
    assert ensure_utc(record.clock_in) == PINNED_NOW
    assert record.status == STATUS_PRESENT


@pytest.mark.asyncio
async def test_time_window_violation_counts_an_attempt(engineer, submit, fetch_record):
    early = datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc)  # 08:30 local
    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, now=early)
    assert exc.value.code is ErrorCode.TIME_WINDOW_VIOLATION
    assert exc.value.remaining_attempts == 2
    assert (await fetch_record(engineer)).attempt_count == 1


@pytest.mark.asyncio
async def test_missing_assignment_does_not_count(make_employee, submit, fetch_record):
    emp = await make_employee("FE-200", "No Plan")
    with pytest.raises(ServiceError) as exc:
        await submit(emp.employee_code)
    assert exc.value.code is ErrorCode.NO_ASSIGNMENT
    assert exc.value.remaining_attempts is None
    assert await fetch_record(emp) is None


@pytest.mark.asyncio
async def test_unknown_employee(submit):
    with pytest.raises(ServiceError) as exc:
        await submit("GHOST-1")
    assert exc.value.code is ErrorCode.EMPLOYEE_NOT_FOUND


# ── Direct submissions ──────────────────────────────────────────────
@pytest.mark.asyncio
async def test_self_check_in_requires_coordinates(engineer, submit):
    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_IN, coords=None)
    assert exc.value.code is ErrorCode.MISSING_COORDINATES

    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_IN, coords=Coordinates(0.0, 0.0))
    assert exc.value.code is ErrorCode.INVALID_COORDINATES


@pytest.mark.asyncio
async def test_self_check_in_records_evidence(engineer, submit, geocoder):
    record = await submit(engineer.employee_code, ClockAction.CHECK_IN)
    assert record.source == SOURCE_SELF
    assert record.ip_address == "10.0.0.5"
    assert record.device_info == "pytest"
    assert record.location.startswith("12, 100 Feet Road")
    assert record.task_start_time == "09:05"
    assert geocoder.reverse_calls


@pytest.mark.asyncio
async def test_admin_entry_bypasses_validation(make_employee, submit):
    """ADMIN entries need no assignment and ignore a (0, 0) position."""
    emp = await make_employee("FE-300", "Office Staff")
    record = await submit(
        emp.employee_code,
        ClockAction.CHECK_IN,
        coords=Coordinates(0.0, 0.0),
        source=SOURCE_ADMIN,
        status=STATUS_LATE,
        actor_id=ADMIN_ID,
    )
    assert record.source == SOURCE_ADMIN
    assert record.status == STATUS_LATE
    assert record.latitude is None
    assert ensure_utc(record.clock_in) == PINNED_NOW


@pytest.mark.asyncio
async def test_admin_absent_entry_leaves_day_unstarted(make_employee, submit):
    emp = await make_employee("FE-301", "Sick Day")
    record = await submit(emp.employee_code, coords=None, source=SOURCE_ADMIN, status=STATUS_ABSENT)
    assert record.status == STATUS_ABSENT
    assert record.clock_in is None


@pytest.mark.asyncio
async def test_admin_entry_resolves_pending_request(engineer, clock_in, submit, run):
    request = await clock_in(engineer.employee_code)
    record = await submit(
        engineer.employee_code, coords=None, source=SOURCE_ADMIN, actor_id=ADMIN_ID
    )
    assert record.id == request.record.id
    assert record.approval_status == APPROVAL_APPROVED
    assert record.approved_by == ADMIN_ID
    assert ensure_utc(record.clock_in) == PINNED_NOW
    assert await run(notifications.list_notifications, type=ATTENDANCE_APPROVAL_REQUEST) == []


@pytest.mark.asyncio
async def test_self_submission_blocked_while_pending(engineer, clock_in, submit):
    await clock_in(engineer.employee_code)
    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_IN)
    assert exc.value.code is ErrorCode.APPROVAL_PENDING


@pytest.mark.asyncio
async def test_check_out_without_check_in_on_admin_record(engineer, run, submit, geocoder, fetch_record):
    """A task assignment prepares an ADMIN record with no clock-in; checking out is refused."""
    await run(
        assignments.assign_daily_location,
        engineer.employee_code,
        assignments.AssignmentInput(date=PINNED_DAY, task_based=True, start_time="09:00"),
        ADMIN_ID,
        geocoder=geocoder,
        now=PINNED_NOW,
    )
    prepared = await fetch_record(engineer)
    assert prepared.source == SOURCE_ADMIN
    assert prepared.clock_in is None

    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_OUT, coords=None)
    assert exc.value.code is ErrorCode.CANNOT_CHECKOUT_WITHOUT_CHECKIN
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_check_out_after_self_check_in(engineer, submit):
    await submit(engineer.employee_code, ClockAction.CHECK_IN)
    record = await submit(
        engineer.employee_code,
        ClockAction.CHECK_OUT,
        coords=None,
        now=PINNED_NOW + timedelta(hours=8),
    )
    assert record.clock_out is not None
    assert ensure_utc(record.clock_out) >= ensure_utc(record.clock_in)


@pytest.mark.asyncio
async def test_task_checkout_never_closes_the_day(engineer, submit):
    await submit(engineer.employee_code, ClockAction.CHECK_IN)

    after_task = await submit(
        engineer.employee_code,
        ClockAction.TASK_CHECKOUT,
        coords=None,
        now=PINNED_NOW + timedelta(hours=2),
    )
    assert after_task.clock_out is None
    assert after_task.task_end_time == "11:05"

    closed = await submit(
        engineer.employee_code,
        ClockAction.CHECK_OUT,
        coords=None,
        now=PINNED_NOW + timedelta(hours=8),
    )
    assert closed.clock_out is not None


@pytest.mark.asyncio
async def test_self_check_in_after_close_is_refused(engineer, submit):
    await submit(engineer.employee_code, ClockAction.CHECK_IN)
    await submit(engineer.employee_code, ClockAction.CHECK_OUT, coords=None, now=PINNED_NOW + timedelta(hours=1))
    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_IN, now=PINNED_NOW + timedelta(hours=2))
    assert exc.value.code is ErrorCode.DAY_ALREADY_CLOSED


# ── Reads ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_daily_status_snapshot(engineer, clock_in, run, dispatcher):
    status = await run(attendance.get_daily_status, engineer.employee_code, now=PINNED_NOW)
    assert status.state is AttendanceState.NONE
    assert status.has_assignment is True
    assert status.remaining_attempts == 3
    assert status.flags["can_clock_in"] is True

    request = await clock_in(engineer.employee_code)
    status = await run(attendance.get_daily_status, engineer.employee_code, now=PINNED_NOW)
    assert status.state is AttendanceState.PENDING_APPROVAL
    assert status.flags == {"can_clock_in": False, "can_clock_out": False, "can_start_task": False}

    await run(approvals.approve_attendance, request.record.id, ADMIN_ID, dispatcher=dispatcher)
    status = await run(attendance.get_daily_status, engineer.employee_code, now=PINNED_NOW)
    assert status.state is AttendanceState.CLOCKED_IN
    assert status.flags["can_clock_out"] is True
    assert status.flags["can_start_task"] is True


@pytest.mark.asyncio
async def test_list_attendance_filters(engineer, make_employee, submit, run):
    office = await make_employee("FE-400", "Desk Worker")
    await submit(engineer.employee_code, ClockAction.CHECK_IN)
    await submit(office.employee_code, coords=None, source=SOURCE_ADMIN, status=STATUS_LATE)

    rows, total = await run(attendance.list_attendance, date=PINNED_DAY)
    assert total == 2
    assert {employee.employee_code for _, employee in rows} == {"FE-100", "FE-400"}

    rows, total = await run(attendance.list_attendance, status=STATUS_LATE)
    assert total == 1
    assert rows[0][1].employee_code == "FE-400"

    rows, total = await run(attendance.list_attendance, limit=1, page=2)
    assert total == 2
    assert len(rows) == 1


# ── End to end ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_lockout_and_re_enable_scenario(engineer, submit, run, fetch_record):
    accepted = await submit(engineer.employee_code, ClockAction.CHECK_IN)
    assert accepted.status == STATUS_PRESENT
    assert accepted.attempt_count == 0

    with pytest.raises(ServiceError) as exc:
        await submit(engineer.employee_code, ClockAction.CHECK_IN, coords=FAR)
    assert exc.value.code is ErrorCode.LOCATION_MISMATCH
    assert exc.value.remaining_attempts == 2
    assert (await fetch_record(engineer)).attempt_count == 1

    for _ in range(2):
        with pytest.raises(ServiceError):
            await submit(engineer.employee_code, ClockAction.CHECK_IN, coords=FAR)
    locked = await fetch_record(engineer)
    assert locked.attempt_count == 3
    assert locked.locked is True
    assert locked.status == STATUS_ABSENT

    reopened = await run(approvals.re_enable_attendance, locked.id, ADMIN_ID)
    assert reopened.locked is False
    assert reopened.locked_reason is None
    assert reopened.attempt_count == 0
    assert reopened.status == STATUS_PRESENT
    assert ensure_utc(reopened.clock_in) == PINNED_NOW

    resubmitted = await submit(
        engineer.employee_code, ClockAction.CHECK_IN, now=PINNED_NOW + timedelta(minutes=10)
    )
    assert resubmitted.locked is False
    assert resubmitted.attempt_count == 0
