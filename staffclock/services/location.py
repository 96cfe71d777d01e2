"""
Location Validator — does a reported position satisfy today's assignment?

Confidence ladder:

* ``exact``: inside the radius (or an exact area keyword hit)
* ``nearby``: within twice the radius; rejected but informative
* ``city``: only the city matched the assigned area text; rejected
* ``none``: no match

Policy outcomes are returned as :class:`ValidationResult`; nothing here
raises for a rejected position.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import (hhmm_to_minutes, local_date_str,
                                   minute_of_day, minutes_to_hhmm, utc_now)
from staffclock.core.config import settings
from staffclock.core.exceptions import ErrorCode
from staffclock.models.assignment import DailyLocationAssignment
from staffclock.models.employee import Employee
from staffclock.services.employees import find_employee
from staffclock.services.geocoding import Geocoder, GeocodingError, haversine_meters

logger = logging.getLogger(__name__)

_KEYWORD_SPLIT_RE = re.compile(r"[\s,.\-]+")


class Confidence(str, Enum):
    EXACT = "exact"
    NEARBY = "nearby"
    CITY = "city"
    NONE = "none"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    @property
    def is_well_formed(self) -> bool:
        lat, lon = self.latitude, self.longitude
        if lat is None or lon is None:
            return False
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90 <= lat <= 90 and -180 <= lon <= 180

    @property
    def is_placeholder(self) -> bool:
        """``(0, 0)`` is what unset GPS fields default to; never a real position."""
        return self.latitude == 0 and self.longitude == 0

    @property
    def is_usable(self) -> bool:
        return self.is_well_formed and not self.is_placeholder


@dataclass
class ValidationResult:
    is_valid: bool
    confidence: Confidence
    details: str
    code: ErrorCode | None = None
    distance: float | None = None
    radius_used: int | None = None
    assigned_coordinates: Coordinates | None = None

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence.value,
            "details": self.details,
            "code": self.code.value if self.code else None,
            "distance": round(self.distance) if self.distance is not None else None,
            "radius_used": self.radius_used,
        }


def assigned_coordinates(assignment: DailyLocationAssignment) -> Coordinates | None:
    if assignment.latitude is None or assignment.longitude is None:
        return None
    coords = Coordinates(float(assignment.latitude), float(assignment.longitude))
    return coords if coords.is_usable else None


def check_distance(reported: Coordinates, assigned: Coordinates, radius: int) -> ValidationResult:
    """Accept iff ``distance <= radius``; ``nearby`` up to twice the radius."""
    distance = haversine_meters(
        reported.latitude, reported.longitude, assigned.latitude, assigned.longitude
    )
    shown = round(distance)
    if distance <= radius:
        return ValidationResult(
            True,
            Confidence.EXACT,
            f"Within {radius}m (distance: {shown}m)",
            distance=distance,
            radius_used=radius,
            assigned_coordinates=assigned,
        )
    if distance <= radius * 2:
        return ValidationResult(
            False,
            Confidence.NEARBY,
            f"Close but outside allowed radius ({shown}m away, allowed {radius}m)",
            code=ErrorCode.LOCATION_MISMATCH,
            distance=distance,
            radius_used=radius,
            assigned_coordinates=assigned,
        )
    return ValidationResult(
        False,
        Confidence.NONE,
        f"Too far from assigned coordinates ({shown}m > {radius}m)",
        code=ErrorCode.LOCATION_MISMATCH,
        distance=distance,
        radius_used=radius,
        assigned_coordinates=assigned,
    )


def area_keywords(text: str) -> list[str]:
    """Meaningful (> 2 chars) lowercase tokens of an assigned area text."""
    return [w for w in _KEYWORD_SPLIT_RE.split(text.lower().strip()) if len(w) > 2]


async def check_area(geocoder: Geocoder, reported: Coordinates, area_text: str) -> ValidationResult:
    """Coarse fallback: match assigned keywords against the reverse-geocoded address."""
    keywords = area_keywords(area_text)
    if not keywords:
        return ValidationResult(
            False,
            Confidence.NONE,
            "Assigned location too generic for area validation",
            code=ErrorCode.ASSIGNED_LOCATION_GENERIC,
        )

    try:
        location = await geocoder.reverse(reported.latitude, reported.longitude)
    except GeocodingError:
        location = None
    if location is None:
        return ValidationResult(
            False,
            Confidence.NONE,
            "Could not reverse geocode user coordinates",
            code=ErrorCode.LOCATION_SERVICE_ERROR,
        )

    address = (location.address or "").lower()
    city = (location.city or "").lower()
    for kw in keywords:
        if kw in address:
            return ValidationResult(True, Confidence.EXACT, f'Matched keyword "{kw}" in user address')
    for kw in keywords:
        if city and kw in city:
            return ValidationResult(
                False,
                Confidence.CITY,
                f"User is in {city} but not in the assigned area {area_text.strip().lower()}",
                code=ErrorCode.CITY_LEVEL_MATCH,
            )
    return ValidationResult(
        False,
        Confidence.NONE,
        f"No area-level match: user {address}, assigned {area_text.strip().lower()}",
        code=ErrorCode.LOCATION_MISMATCH,
    )


def check_time_window(assignment: DailyLocationAssignment, now: datetime) -> ValidationResult | None:
    """Return a rejection when *now* is outside the assignment's window, else ``None``.

    Task-based days are never windowed. Assignments with coordinates use
    the hard window; area-only ones get ``DEFAULT_FLEXIBLE_WINDOW_MINUTES``
    of slack on both sides.
    """
    if assignment.is_task_based:
        return None

    current = minute_of_day(now)
    start = hhmm_to_minutes(assignment.start_time)
    end = hhmm_to_minutes(assignment.end_time)

    if assigned_coordinates(assignment) is not None:
        if current < start or current > end:
            return ValidationResult(
                False,
                Confidence.NONE,
                f"Attendance only allowed between {assignment.start_time} and {assignment.end_time}",
                code=ErrorCode.TIME_WINDOW_VIOLATION,
            )
        return None

    flex = settings.DEFAULT_FLEXIBLE_WINDOW_MINUTES
    flex_start = start - flex
    flex_end = max(end, start) + flex
    if current < flex_start or current > flex_end:
        return ValidationResult(
            False,
            Confidence.NONE,
            f"Attendance allowed between {minutes_to_hhmm(flex_start)} and "
            f"{minutes_to_hhmm(flex_end)} (flexible window)",
            code=ErrorCode.TIME_WINDOW_VIOLATION,
        )
    return None


async def get_assignment(
    db: AsyncSession, employee_id: int, day: str
) -> DailyLocationAssignment | None:
    result = await db.execute(
        select(DailyLocationAssignment).where(
            DailyLocationAssignment.employee_id == employee_id,
            DailyLocationAssignment.date == day,
        )
    )
    return result.scalar_one_or_none()


class LocationValidator:
    """Validates reported positions against the day's assignment."""

    def __init__(self, geocoder: Geocoder) -> None:
        self.geocoder = geocoder

    async def validate(
        self,
        db: AsyncSession,
        employee_code: str,
        coordinates: Coordinates,
        *,
        now: datetime | None = None,
    ) -> ValidationResult:
        employee = await find_employee(db, employee_code)
        if employee is None:
            return ValidationResult(
                False, Confidence.NONE, "Employee not found", code=ErrorCode.EMPLOYEE_NOT_FOUND
            )
        return await self.validate_for(db, employee, coordinates, now=now)

    async def validate_for(
        self,
        db: AsyncSession,
        employee: Employee,
        coordinates: Coordinates,
        *,
        now: datetime | None = None,
    ) -> ValidationResult:
        now = now or utc_now()

        if not coordinates.is_usable:
            return ValidationResult(
                False,
                Confidence.NONE,
                "Reported coordinates are invalid",
                code=ErrorCode.INVALID_COORDINATES,
            )

        assignment = await get_assignment(db, employee.id, local_date_str(now))
        if assignment is None:
            return ValidationResult(
                False, Confidence.NONE, "No assigned location for today", code=ErrorCode.NO_ASSIGNMENT
            )

        window_violation = check_time_window(assignment, now)
        if window_violation is not None:
            return window_violation

        assigned = assigned_coordinates(assignment)
        if assigned is not None:
            radius = int(assignment.radius or settings.DEFAULT_ATTENDANCE_RADIUS_METERS)
            result = check_distance(coordinates, assigned, radius)
            logger.info(
                "GPS validation for %s: %s (%s)",
                employee.employee_code,
                result.confidence.value,
                result.details,
            )
            return result

        if assignment.area_text:
            result = await check_area(self.geocoder, coordinates, assignment.area_text)
            logger.info(
                "Area validation for %s: %s (%s)",
                employee.employee_code,
                result.confidence.value,
                result.details,
            )
            return result

        if assignment.is_task_based:
            return ValidationResult(True, Confidence.EXACT, "Task-based assignment (no GPS required)")

        return ValidationResult(
            False,
            Confidence.NONE,
            "Assigned coordinates are not present or invalid",
            code=ErrorCode.ASSIGNED_COORDS_MISSING,
        )
