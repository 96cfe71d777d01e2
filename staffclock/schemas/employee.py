"""Pydantic schemas for the employee directory."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, field_validator

from staffclock.models.employee import EMPLOYEE_ROLES

_CODE_RE = re.compile(r"^[A-Za-z0-9:_-]{2,64}$")


def _check_role(v: str | None) -> str | None:
    if v is not None and v not in EMPLOYEE_ROLES:
        raise ValueError(f"Role must be one of: {', '.join(EMPLOYEE_ROLES)}")
    return v


class EmployeeCreate(BaseModel):
    employee_code: str
    name: str
    role: str = "FIELD_ENGINEER"
    email: str | None = None
    phone: str | None = None

    @field_validator("employee_code")
    @classmethod
    def _code(cls, v: str) -> str:
        v = v.strip()
        if not _CODE_RE.match(v):
            raise ValueError("employee_code must be 2-64 alphanumeric chars")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v

    @field_validator("role")
    @classmethod
    def _role(cls, v: str) -> str:
        return _check_role(v)  # type: ignore[return-value]

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class EmployeeUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("role")
    @classmethod
    def _role(cls, v: str | None) -> str | None:
        return _check_role(v)


class EmployeeRead(BaseModel):
    id: int
    employee_code: str
    name: str
    role: str
    email: str | None
    phone: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}
