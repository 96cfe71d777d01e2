"""Vehicle pool: register, assign to an employee, release."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.clock import utc_now
from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.vehicle import VEHICLE_ASSIGNED, VEHICLE_AVAILABLE, Vehicle
from staffclock.services.employees import get_employee

logger = logging.getLogger(__name__)


async def create_vehicle(
    db: AsyncSession,
    vehicle_number: str,
    make: str | None = None,
    model: str | None = None,
) -> Vehicle:
    vehicle = Vehicle(vehicle_number=vehicle_number.strip().upper(), make=make, model=model)
    db.add(vehicle)
    await db.commit()
    await db.refresh(vehicle)
    return vehicle


async def list_vehicles(db: AsyncSession, status: str | None = None) -> list[Vehicle]:
    query = select(Vehicle)
    if status:
        query = query.where(Vehicle.status == status)
    result = await db.execute(query.order_by(Vehicle.vehicle_number))
    return list(result.scalars().all())


async def _lock_vehicle(db: AsyncSession, vehicle_id: int) -> Vehicle:
    result = await db.execute(
        select(Vehicle)
        .where(Vehicle.id == vehicle_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    vehicle = result.scalar_one_or_none()
    if vehicle is None:
        raise ServiceError(ErrorCode.VEHICLE_NOT_FOUND, "Vehicle not found")
    return vehicle


async def get_assigned_vehicle(db: AsyncSession, employee_id: int) -> Vehicle | None:
    result = await db.execute(
        select(Vehicle).where(
            Vehicle.assigned_to == employee_id,
            Vehicle.status == VEHICLE_ASSIGNED,
        )
    )
    return result.scalars().first()


async def assign_vehicle(
    db: AsyncSession,
    vehicle_id: int,
    employee_code: str,
    now: datetime | None = None,
) -> Vehicle:
    employee = await get_employee(db, employee_code)
    vehicle = await _lock_vehicle(db, vehicle_id)
    if vehicle.status != VEHICLE_AVAILABLE:
        await db.rollback()
        raise ServiceError(ErrorCode.VEHICLE_UNAVAILABLE, "Vehicle is already assigned")

    current = await get_assigned_vehicle(db, employee.id)
    if current is not None:
        message = f"Employee already has vehicle {current.vehicle_number}"
        await db.rollback()
        raise ServiceError(ErrorCode.VEHICLE_UNAVAILABLE, message)

    vehicle.status = VEHICLE_ASSIGNED
    vehicle.assigned_to = employee.id
    vehicle.assigned_at = now or utc_now()
    await db.commit()
    await db.refresh(vehicle)
    logger.info("Vehicle %s assigned to %s", vehicle.vehicle_number, employee.employee_code)
    return vehicle


async def unassign_vehicle(db: AsyncSession, vehicle_id: int) -> bool:
    """Release a vehicle. Returns ``False`` when it was no longer assigned."""
    vehicle = await _lock_vehicle(db, vehicle_id)
    if vehicle.status != VEHICLE_ASSIGNED:
        await db.commit()
        return False
    vehicle.status = VEHICLE_AVAILABLE
    vehicle.assigned_to = None
    vehicle.assigned_at = None
    await db.commit()
    logger.info("Vehicle %s released", vehicle.vehicle_number)
    return True
