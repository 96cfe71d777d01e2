"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from staffclock.api.v1.endpoints import (assignments, attendance, employees,
                                         health, notifications, tasks,
                                         vehicles)

api_router = APIRouter()

# Attendance state machine, approvals, tasks
api_router.include_router(attendance.router)
api_router.include_router(tasks.router)
api_router.include_router(assignments.router)

# Directory and fleet
api_router.include_router(employees.router)
api_router.include_router(vehicles.router)

# Admin inbox
api_router.include_router(notifications.router)

api_router.include_router(health.router)
