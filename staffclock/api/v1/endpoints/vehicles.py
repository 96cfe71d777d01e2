"""
Vehicle registry endpoints (admin only).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import CurrentUser, get_db, require_admin
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.vehicle import Vehicle
from staffclock.schemas.vehicle import (VehicleAssignRequest, VehicleCreate,
                                        VehicleRead, VehicleUnassignResponse)
from staffclock.services import vehicles

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("", response_model=list[VehicleRead])
async def list_vehicles(
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    return await vehicles.list_vehicles(db, status)


@router.post("", response_model=VehicleRead, status_code=201)
async def create_vehicle(
    body: VehicleCreate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    return await vehicles.create_vehicle(db, body.vehicle_number, body.make, body.model)


@router.post("/{vehicle_id}/assign", response_model=VehicleRead)
async def assign_vehicle(
    vehicle_id: int,
    body: VehicleAssignRequest,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
):
    return await vehicles.assign_vehicle(db, vehicle_id, body.employee_code)


@router.post("/{vehicle_id}/unassign", response_model=VehicleUnassignResponse)
async def unassign_vehicle(
    vehicle_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> VehicleUnassignResponse:
    changed = await vehicles.unassign_vehicle(db, vehicle_id)
    vehicle = await db.get(Vehicle, vehicle_id, populate_existing=True)
    if vehicle is None:
        raise ServiceError(ErrorCode.VEHICLE_NOT_FOUND, "Vehicle not found")
    return VehicleUnassignResponse(
        success=True,
        changed=changed,
        vehicle=VehicleRead.model_validate(vehicle),
    )
