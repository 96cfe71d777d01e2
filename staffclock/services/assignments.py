"""
Daily location assignments: admin upsert and the employee's view of today.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import (hhmm_to_minutes, local_date_str,
                                   minute_of_day, utc_now)
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.assignment import (TASK_LOCATION_MARKER,
                                          DailyLocationAssignment)
from staffclock.models.attendance import (SOURCE_ADMIN, STATUS_LATE,
                                          STATUS_PRESENT)
from staffclock.services.employees import get_employee
from staffclock.services.geocoding import (COARSE_GRANULARITIES, Geocoder,
                                           GeocodingError)
from staffclock.services.location import get_assignment
from staffclock.services.lockout import lock_or_create

logger = logging.getLogger(__name__)

# Forward-geocoded positions are approximate; never validate tighter than this
MIN_GEOCODED_RADIUS_METERS = 500
LATE_ASSIGNMENT_GRACE_MINUTES = 30


@dataclass
class AssignmentInput:
    date: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius: int | None = None
    address: str | None = None
    city: str | None = None
    start_time: str = "09:00"
    end_time: str = "18:00"
    task_based: bool = False
    geocode: bool = False


async def _geocode_into(geocoder: Geocoder, data: AssignmentInput) -> None:
    text = (data.address or data.city or "").strip()
    if not text:
        return
    try:
        result = await geocoder.forward(text)
    except GeocodingError as exc:
        raise ServiceError(
            ErrorCode.LOCATION_SERVICE_ERROR, f"Could not geocode assigned location: {exc}"
        ) from exc
    if result is None:
        raise ServiceError(
            ErrorCode.LOCATION_SERVICE_ERROR, f"No geocoding result for {text!r}"
        )
    if result.granularity in COARSE_GRANULARITIES and data.radius is None:
        # Too coarse for a radius check; keep the area-text fallback
        logger.info("Geocoded %r only to %s level; keeping area match", text, result.granularity)
        return
    data.latitude = result.latitude
    data.longitude = result.longitude
    data.radius = max(result.estimated_radius_meters or 0, data.radius or 0, MIN_GEOCODED_RADIUS_METERS)


async def assign_daily_location(
    db: AsyncSession,
    employee_code: str,
    data: AssignmentInput,
    admin_id: str,
    *,
    geocoder: Geocoder,
    now: datetime | None = None,
) -> DailyLocationAssignment:
    """Create or replace the employee's assignment for ``data.date`` (default today).

    A task-based assignment also prepares that day's attendance record as
    an ADMIN entry without ``clock_in`` so the employee's first check-in
    takes it over.
    """
    now = now or utc_now()
    employee = await get_employee(db, employee_code)
    day = data.date or local_date_str(now)

    if data.geocode and (data.latitude is None or data.longitude is None):
        await _geocode_into(geocoder, data)

    assignment = await get_assignment(db, employee.id, day)
    if assignment is None:
        assignment = DailyLocationAssignment(employee_id=employee.id, date=day)
        db.add(assignment)

    assignment.latitude = data.latitude
    assignment.longitude = data.longitude
    assignment.radius = data.radius
    assignment.address = data.address
    assignment.city = data.city
    assignment.state = TASK_LOCATION_MARKER if data.task_based else None
    assignment.start_time = data.start_time
    assignment.end_time = data.end_time
    assignment.assigned_by = admin_id
    await db.flush()

    if data.task_based:
        late = (
            day == local_date_str(now)
            and minute_of_day(now) > hhmm_to_minutes(data.start_time) + LATE_ASSIGNMENT_GRACE_MINUTES
        )
        record = await lock_or_create(db, employee.id, day, source=SOURCE_ADMIN)
        if not record.locked:
            record.task_start_time = data.start_time
            record.task_end_time = None
            if record.clock_in is None:
                record.source = SOURCE_ADMIN
                record.status = STATUS_LATE if late else STATUS_PRESENT
                record.location = data.address or data.city or "Task Assignment"

    await db.commit()
    await db.refresh(assignment)
    logger.info(
        "Location assigned to %s for %s by %s (%s)",
        employee.employee_code,
        day,
        admin_id,
        "task" if data.task_based else "coordinates" if data.latitude is not None else "area",
    )
    return assignment


async def get_today_assignment(
    db: AsyncSession,
    employee_code: str,
    now: datetime | None = None,
) -> DailyLocationAssignment:
    employee = await get_employee(db, employee_code)
    assignment = await get_assignment(db, employee.id, local_date_str(now or utc_now()))
    if assignment is None:
        raise ServiceError(ErrorCode.NO_ASSIGNMENT, "No assigned location for today")
    return assignment
