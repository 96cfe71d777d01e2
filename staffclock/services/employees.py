"""Employee directory lookups shared by every attendance service."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.exceptions import ErrorCode, ServiceError
from staffclock.models.employee import Employee


async def find_employee(db: AsyncSession, employee_code: str) -> Employee | None:
    """Resolve a display ID to an active employee, or ``None``."""
    result = await db.execute(
        select(Employee).where(
            Employee.employee_code == employee_code,
            Employee.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_employee(db: AsyncSession, employee_code: str) -> Employee:
    employee = await find_employee(db, employee_code)
    if employee is None:
        raise ServiceError(ErrorCode.EMPLOYEE_NOT_FOUND, "Employee not found")
    return employee
