"""
Daily location assignment endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import (CurrentUser, get_db, get_geocoder,
                                    require_admin, require_employee)
from staffclock.schemas.attendance import AssignmentRead, AssignmentRequest
from staffclock.services import assignments
from staffclock.services.geocoding import Geocoder

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.get("/today", response_model=AssignmentRead)
async def my_assignment_today(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_employee),
):
    return await assignments.get_today_assignment(db, user.id)


@router.put("/{employee_code}", response_model=AssignmentRead)
async def assign_location(
    employee_code: str,
    body: AssignmentRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """Create or replace an employee's assignment for a day (default today)."""
    return await assignments.assign_daily_location(
        db,
        employee_code,
        assignments.AssignmentInput(**body.model_dump()),
        admin.id,
        geocoder=geocoder,
    )
