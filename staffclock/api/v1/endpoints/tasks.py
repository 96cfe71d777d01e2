"""
Task session endpoints — start/end a task inside an open, approved day.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import CurrentUser, get_db, require_employee
from staffclock.core.config import settings
from staffclock.core.rate_limit import limiter
from staffclock.schemas.attendance import AttendanceRead, TaskResponse
from staffclock.services import tasks

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/check-in", response_model=TaskResponse)
@limiter.limit(settings.SUBMISSION_RATE_LIMIT)
async def task_check_in(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
) -> TaskResponse:
    record = await tasks.task_check_in(db, user.id)
    return TaskResponse(
        success=True,
        task_start_time=record.task_start_time,
        task_end_time=record.task_end_time,
        attendance=AttendanceRead.model_validate(record),
    )


@router.post("/check-out", response_model=TaskResponse)
@limiter.limit(settings.SUBMISSION_RATE_LIMIT)
async def task_check_out(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
) -> TaskResponse:
    """End the current task; the attendance day stays open."""
    record = await tasks.task_check_out(db, user.id)
    return TaskResponse(
        success=True,
        task_start_time=record.task_start_time,
        task_end_time=record.task_end_time,
        attendance=AttendanceRead.model_validate(record),
    )
