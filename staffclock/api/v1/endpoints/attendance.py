"""
Attendance endpoints — daily clock-in/out, direct submissions, status and approvals.

- Employee routes act on the caller's own record (JWT subject).
- Listing, approval and ``source=ADMIN`` entries require the admin role.
- Submission routes are rate limited per client address.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import (CurrentUser, evidence_from, get_db,
                                    get_current_user, get_dispatcher,
                                    get_validator, require_admin,
                                    require_employee)
from staffclock.core.config import settings
from staffclock.core.rate_limit import limiter
from staffclock.models.attendance import (SOURCE_ADMIN, STATUS_ABSENT,
                                          AttendanceRecord)
from staffclock.models.employee import Employee
from staffclock.schemas.attendance import (ApproveRequest, AttemptsResponse,
                                           AttendanceListResponse,
                                           AttendanceRead,
                                           AttendanceSubmitRequest,
                                           ClockInRequest, ClockInResponse,
                                           ClockOutResponse,
                                           DailyStatusResponse, RejectRequest)
from staffclock.services import approvals, attendance, lockout
from staffclock.services.dispatcher import SideEffectDispatcher
from staffclock.services.location import LocationValidator

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)


def _read(record: AttendanceRecord, employee: Employee | None = None) -> AttendanceRead:
    data = AttendanceRead.model_validate(record)
    if employee is not None:
        data.employee_code = employee.employee_code
        data.employee_name = employee.name
    return data


def _status_response(snapshot: attendance.DailyStatus) -> DailyStatusResponse:
    return DailyStatusResponse(
        employee_id=snapshot.employee_id,
        employee_name=snapshot.employee_name,
        date=snapshot.date,
        state=snapshot.state,
        has_assignment=snapshot.has_assignment,
        remaining_attempts=snapshot.remaining_attempts,
        can_clock_in=snapshot.flags.get("can_clock_in", False),
        can_clock_out=snapshot.flags.get("can_clock_out", False),
        can_start_task=snapshot.flags.get("can_start_task", False),
        work_hours=snapshot.work.work_hours if snapshot.work else None,
        attendance=_read(snapshot.record) if snapshot.record is not None else None,
    )


def _attempts_response(result: lockout.AttemptStatus) -> AttemptsResponse:
    return AttemptsResponse(
        employee_id=result.employee_id,
        date=result.date,
        attempts=result.attempts,
        remaining=result.remaining,
        max_attempts=settings.MAX_ATTEMPTS,
        locked=result.locked,
        status=result.status,
        locked_reason=result.locked_reason,
    )


# ── Daily clock-in / clock-out ──────────────────────────────────────
@router.post("/clock-in", response_model=ClockInResponse)
@limiter.limit(settings.SUBMISSION_RATE_LIMIT)
async def clock_in(
    request: Request,
    body: ClockInRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
    validator: LocationValidator = Depends(get_validator),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> ClockInResponse:
    """Request today's clock-in; with approval enabled the day starts once an admin approves."""
    result = await attendance.daily_clock_in(
        db,
        user.id,
        evidence_from(request, body),
        validator=validator,
        dispatcher=dispatcher,
    )
    if result.already_submitted:
        message = (
            "Clock-in already submitted and awaiting approval"
            if result.pending
            else "Already clocked in for today"
        )
    elif result.pending:
        message = "Clock-in submitted for admin approval"
    else:
        message = "Clocked in"
    return ClockInResponse(
        success=True,
        pending=result.pending,
        already_submitted=result.already_submitted,
        message=message,
        attendance=_read(result.record),
    )


@router.post("/clock-out", response_model=ClockOutResponse)
@limiter.limit(settings.SUBMISSION_RATE_LIMIT)
async def clock_out(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> ClockOutResponse:
    result = await attendance.daily_clock_out(db, user.id, dispatcher=dispatcher)
    work = result.work
    return ClockOutResponse(
        success=True,
        message="Already clocked out for today" if result.already_closed else "Clocked out",
        clock_in=result.record.clock_in,
        clock_out=result.record.clock_out,
        work_hours=work.work_hours if work else None,
        worked_minutes=work.worked_minutes if work else None,
        overtime_minutes=work.overtime_minutes if work else None,
        overtime=work.overtime if work else None,
        attendance=_read(result.record),
    )


# ── Direct submission ───────────────────────────────────────────────
@router.post("", response_model=AttendanceRead)
@limiter.limit(settings.SUBMISSION_RATE_LIMIT)
async def submit_attendance(
    request: Request,
    body: AttendanceSubmitRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    validator: LocationValidator = Depends(get_validator),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> AttendanceRead:
    """Apply a check-in / check-out / task-checkout / implicit entry to today's record.

    Employees submit ``source=SELF`` for themselves and are location
    validated. Admins submit ``source=ADMIN`` for a named employee and
    bypass validation.
    """
    if body.source == SOURCE_ADMIN:
        if not user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin privileges required",
            )
        if not body.employee_code:
            raise HTTPException(status_code=400, detail="employee_code is required for admin entries")
        employee_code = body.employee_code
    else:
        if user.is_admin:
            raise HTTPException(status_code=400, detail="Admin entries must use source=ADMIN")
        if body.employee_code and body.employee_code != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Cannot submit attendance for another employee",
            )
        if body.status == STATUS_ABSENT:
            raise HTTPException(status_code=400, detail="Employees cannot mark themselves ABSENT")
        employee_code = user.id

    record = await attendance.submit_attendance(
        db,
        employee_code,
        body.action,
        evidence=evidence_from(request, body),
        source=body.source,
        status=body.status,
        actor_id=user.id if body.source == SOURCE_ADMIN else None,
        validator=validator,
        dispatcher=dispatcher,
    )
    return _read(record)


# ── Status & attempts ───────────────────────────────────────────────
@router.get("/daily-status", response_model=DailyStatusResponse)
async def my_daily_status(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
) -> DailyStatusResponse:
    return _status_response(await attendance.get_daily_status(db, user.id))


@router.get("/daily-status/{employee_code}", response_model=DailyStatusResponse)
async def employee_daily_status(
    employee_code: str,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> DailyStatusResponse:
    return _status_response(await attendance.get_daily_status(db, employee_code))


@router.get("/attempts", response_model=AttemptsResponse)
async def my_remaining_attempts(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
) -> AttemptsResponse:
    return _attempts_response(await lockout.get_remaining_attempts(db, user.id))


@router.get("/attempts/{employee_code}", response_model=AttemptsResponse)
async def employee_remaining_attempts(
    employee_code: str,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> AttemptsResponse:
    return _attempts_response(await lockout.get_remaining_attempts(db, employee_code))


# ── Admin views ─────────────────────────────────────────────────────
@router.get("", response_model=AttendanceListResponse)
async def list_attendance(
    date: str | None = None,
    employee_code: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    approval_status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> AttendanceListResponse:
    rows, total = await attendance.list_attendance(
        db,
        date=date,
        employee_code=employee_code,
        status=status_filter,
        approval_status=approval_status,
        page=page,
        limit=limit,
    )
    return AttendanceListResponse(
        items=[_read(record, employee) for record, employee in rows],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/pending-approvals", response_model=list[AttendanceRead])
async def pending_approvals(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> list[AttendanceRead]:
    rows = await approvals.list_pending_approvals(db)
    return [_read(record, employee) for record, employee in rows]


@router.post("/{attendance_id}/approve", response_model=AttendanceRead)
async def approve(
    attendance_id: int,
    body: ApproveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> AttendanceRead:
    record = await approvals.approve_attendance(
        db,
        attendance_id,
        admin.id,
        dispatcher=dispatcher,
        reason=body.reason if body else None,
    )
    return _read(record)


@router.post("/{attendance_id}/reject", response_model=AttendanceRead)
async def reject(
    attendance_id: int,
    body: RejectRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> AttendanceRead:
    record = await approvals.reject_attendance(
        db, attendance_id, admin.id, body.reason, dispatcher=dispatcher
    )
    return _read(record)


@router.post("/{attendance_id}/re-enable", response_model=AttendanceRead)
async def re_enable(
    attendance_id: int,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> AttendanceRead:
    record = await approvals.re_enable_attendance(db, attendance_id, admin.id)
    return _read(record)

