"""
Side-effect dispatcher.

Runs the follow-up work of a committed attendance transition: admin
notifications and releasing the employee's vehicle on clock-out. Each
action runs in its own session; a failure is logged and dropped and never
reaches the caller, whose transition is already durable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffclock.models.notification import (ATTENDANCE_ALERT,
                                            ATTENDANCE_APPROVAL_REQUEST,
                                            VEHICLE_UNASSIGNED)
from staffclock.services import notifications, vehicles

logger = logging.getLogger(__name__)

APPROVAL_REQUESTED = "approval_requested"
APPROVAL_RESOLVED = "approval_resolved"
CLOCKED_OUT = "clocked_out"


@dataclass(frozen=True)
class TransitionEvent:
    """Snapshot of a committed transition, detached from any session."""

    kind: str
    attendance_id: int
    employee_id: int
    employee_code: str
    employee_name: str
    at: datetime
    data: dict[str, Any] = field(default_factory=dict)


class SideEffectDispatcher:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._handlers: dict[str, Callable[[TransitionEvent], Awaitable[None]]] = {
            APPROVAL_REQUESTED: self._on_approval_requested,
            APPROVAL_RESOLVED: self._on_approval_resolved,
            CLOCKED_OUT: self._on_clocked_out,
        }

    async def dispatch(self, event: TransitionEvent) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning("No side effects registered for %s", event.kind)
            return
        await handler(event)

    async def _run(
        self,
        label: str,
        event: TransitionEvent,
        action: Callable[[AsyncSession], Awaitable[Any]],
    ) -> None:
        try:
            async with self.session_factory() as db:
                await action(db)
        except Exception:
            logger.exception(
                "Side effect %r failed for attendance %s (employee %s)",
                label,
                event.attendance_id,
                event.employee_code,
            )

    # ── Handlers ──────────────────────────────────────────────────

    async def _on_approval_requested(self, event: TransitionEvent) -> None:
        async def notify(db: AsyncSession) -> None:
            await notifications.create_admin_notification(
                db,
                ATTENDANCE_APPROVAL_REQUEST,
                "Attendance Approval Required",
                f"{event.employee_name} ({event.employee_code}) has clocked in "
                "and requires approval.",
                {
                    "attendanceId": event.attendance_id,
                    "employeeId": event.employee_code,
                    "employeeName": event.employee_name,
                    "pendingCheckInAt": event.at.isoformat(),
                    **event.data,
                },
            )

        await self._run("approval request notification", event, notify)

    async def _on_approval_resolved(self, event: TransitionEvent) -> None:
        async def remove(db: AsyncSession) -> None:
            await notifications.remove_approval_requests(db, event.attendance_id)

        await self._run("approval request cleanup", event, remove)

    async def _on_clocked_out(self, event: TransitionEvent) -> None:
        async def release_vehicle(db: AsyncSession) -> None:
            vehicle = await vehicles.get_assigned_vehicle(db, event.employee_id)
            if vehicle is None:
                return
            vehicle_id, vehicle_number = vehicle.id, vehicle.vehicle_number
            if not await vehicles.unassign_vehicle(db, vehicle_id):
                return
            await notifications.create_admin_notification(
                db,
                VEHICLE_UNASSIGNED,
                "Vehicle Auto-Unassigned",
                f"Vehicle {vehicle_number} was automatically unassigned from "
                f"{event.employee_name} on clock-out.",
                {
                    "vehicleId": vehicle_id,
                    "vehicleNumber": vehicle_number,
                    "employeeId": event.employee_code,
                    "employeeName": event.employee_name,
                    "clockOutTime": event.at.isoformat(),
                    "type": "automatic",
                },
            )

        async def alert(db: AsyncSession) -> None:
            await notifications.create_admin_notification(
                db,
                ATTENDANCE_ALERT,
                "Employee Clocked Out",
                f"{event.employee_name} ({event.employee_code}) has clocked out.",
                {
                    "attendanceId": event.attendance_id,
                    "employeeId": event.employee_code,
                    "employeeName": event.employee_name,
                    "clockOutTime": event.at.isoformat(),
                    **event.data,
                },
            )

        await self._run("vehicle release", event, release_vehicle)
        await self._run("clock-out alert", event, alert)
