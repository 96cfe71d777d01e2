"""
Vehicle model — fleet rows handed out to field engineers.

``assigned_to`` is a lookup reference to an employee, not ownership.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from staffclock.db.base import Base

VEHICLE_AVAILABLE = "AVAILABLE"
VEHICLE_ASSIGNED = "ASSIGNED"


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    vehicle_number: str = Column(String(32), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    make: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    model: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default=VEHICLE_AVAILABLE)  # type: ignore[assignment]
    # AVAILABLE | ASSIGNED
    assigned_to: int | None = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)  # type: ignore[assignment]
    assigned_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
