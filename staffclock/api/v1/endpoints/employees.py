"""
Employee directory CRUD.

- GET operations require any authenticated user.
- POST / PUT / DELETE operations require admin role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import (CurrentUser, get_current_user, get_db,
                                    require_admin)
from staffclock.models.employee import Employee
from staffclock.schemas.attendance import DeleteResponse
from staffclock.schemas.employee import (EmployeeCreate, EmployeeRead,
                                         EmployeeUpdate)

router = APIRouter(prefix="/employees", tags=["employees"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[EmployeeRead])
async def list_employees(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    search: str | None = None,
    role: str | None = None,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
) -> list[Employee]:
    query = (
        select(Employee)
        .where(Employee.is_active.is_(True))
        .order_by(Employee.name)
        .offset(skip)
        .limit(limit)
    )
    if search:
        # Escape SQL LIKE metacharacters to prevent wildcard injection
        safe_search = search.replace("%", r"\%").replace("_", r"\_")
        query = query.where(Employee.name.ilike(f"%{safe_search}%", escape="\\"))
    if role:
        query = query.where(Employee.role == role)
    result = await db.execute(query)
    return list(result.scalars().all())


@router.post("", response_model=EmployeeRead, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Employee:
    existing = await db.execute(
        select(Employee).where(Employee.employee_code == body.employee_code)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=400,
            detail=f"Employee ID '{body.employee_code}' already registered",
        )

    employee = Employee(**body.model_dump())
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    logger.info("Created employee %s (%s)", employee.name, employee.employee_code)
    return employee


@router.get("/{employee_id}", response_model=EmployeeRead)
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
) -> Employee:
    result = await db.execute(
        select(Employee).where(Employee.id == employee_id, Employee.is_active.is_(True))
    )
    emp = result.scalar_one_or_none()
    if emp is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return emp


@router.put("/{employee_id}", response_model=EmployeeRead)
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    emp = result.scalar_one_or_none()
    if emp is None:
        raise HTTPException(status_code=404, detail="Employee not found")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(emp, field, value)

    await db.commit()
    await db.refresh(emp)
    logger.info("Updated employee %d", employee_id)
    return emp


@router.delete("/{employee_id}", response_model=DeleteResponse)
async def delete_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> DeleteResponse:
    """Soft-delete (deactivate) an employee. Attendance history is preserved."""
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    emp = result.scalar_one_or_none()
    if emp is None:
        raise HTTPException(status_code=404, detail="Employee not found")

    emp.is_active = False
    await db.commit()
    logger.info("Soft-deleted employee %d (%s)", employee_id, emp.name)
    return DeleteResponse(success=True, message=f"Employee '{emp.name}' deactivated")
