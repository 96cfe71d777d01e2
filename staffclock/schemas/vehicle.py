"""Pydantic schemas for the vehicle registry."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator


class VehicleCreate(BaseModel):
    vehicle_number: str
    make: str | None = None
    model: str | None = None

    @field_validator("vehicle_number")
    @classmethod
    def _number(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 32:
            raise ValueError("vehicle_number must be 1-32 characters")
        return v


class VehicleAssignRequest(BaseModel):
    employee_code: str


class VehicleRead(BaseModel):
    id: int
    vehicle_number: str
    make: str | None
    model: str | None
    status: str
    assigned_to: int | None
    assigned_at: datetime | None

    model_config = {"from_attributes": True}


class VehicleUnassignResponse(BaseModel):
    success: bool
    changed: bool
    vehicle: VehicleRead
