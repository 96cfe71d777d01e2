"""
Employee model — the directory the attendance engine resolves identities against.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from staffclock.db.base import Base

ROLE_FIELD_ENGINEER = "FIELD_ENGINEER"
ROLE_IN_OFFICE = "IN_OFFICE"
EMPLOYEE_ROLES = (ROLE_FIELD_ENGINEER, ROLE_IN_OFFICE)


class Employee(Base):
    __tablename__ = "employees"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    # Display ID, also the JWT subject for employee tokens
    employee_code: str = Column(String(64), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(30),
        nullable=False,
        default=ROLE_FIELD_ENGINEER,
        server_default=ROLE_FIELD_ENGINEER,
    )  # FIELD_ENGINEER | IN_OFFICE
    email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
