"""Pydantic schemas for attendance, tasks, approvals and assignments."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from staffclock.services.attendance import AttendanceState, ClockAction

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CODE_RE = re.compile(r"^[A-Za-z0-9:_-]{2,64}$")


def _check_hhmm(v: str) -> str:
    v = v.strip()
    if not _HHMM_RE.match(v):
        raise ValueError("Time must be HH:MM (24h)")
    return v


# ── Submissions ─────────────────────────────────────────────────────
class ClockInRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    location: str | None = Field(default=None, max_length=500)
    photo: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _both_or_neither(self) -> "ClockInRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


class AttendanceSubmitRequest(ClockInRequest):
    action: ClockAction = ClockAction.IMPLICIT
    source: Literal["SELF", "ADMIN"] = "SELF"
    status: Literal["PRESENT", "LATE", "ABSENT"] = "PRESENT"
    employee_code: str | None = None  # required for ADMIN entries

    @field_validator("employee_code")
    @classmethod
    def _code(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not _CODE_RE.match(v):
            raise ValueError("employee_code must be 2-64 alphanumeric chars")
        return v


# ── Records ─────────────────────────────────────────────────────────
class AttendanceRead(BaseModel):
    id: int
    employee_id: int
    date: str
    status: str
    approval_status: str
    source: str
    clock_in: datetime | None
    clock_out: datetime | None
    pending_check_in_at: datetime | None
    task_start_time: str | None
    task_end_time: str | None
    location: str | None
    latitude: float | None
    longitude: float | None
    ip_address: str | None
    device_info: str | None
    photo: str | None
    attempt_count: int
    locked: bool
    locked_reason: str | None
    approved_by: str | None
    approved_at: datetime | None
    rejected_by: str | None
    rejected_at: datetime | None
    approval_reason: str | None
    employee_code: str | None = None  # joined from employee table
    employee_name: str | None = None

    model_config = {"from_attributes": True}


class AttendanceListResponse(BaseModel):
    items: list[AttendanceRead]
    total: int
    page: int
    limit: int


class ClockInResponse(BaseModel):
    success: bool
    pending: bool
    already_submitted: bool
    message: str
    attendance: AttendanceRead


class ClockOutResponse(BaseModel):
    success: bool
    message: str
    clock_in: datetime | None
    clock_out: datetime | None
    work_hours: str | None = None
    worked_minutes: int | None = None
    overtime_minutes: int | None = None
    overtime: str | None = None
    attendance: AttendanceRead


class DailyStatusResponse(BaseModel):
    employee_id: str
    employee_name: str
    date: str
    state: AttendanceState
    has_assignment: bool
    remaining_attempts: int
    can_clock_in: bool
    can_clock_out: bool
    can_start_task: bool
    work_hours: str | None = None
    attendance: AttendanceRead | None = None


class AttemptsResponse(BaseModel):
    employee_id: str
    date: str
    attempts: int
    remaining: int
    max_attempts: int
    locked: bool
    status: str | None
    locked_reason: str | None = None


# ── Approvals ───────────────────────────────────────────────────────
class ApproveRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class RejectRequest(BaseModel):
    reason: str = Field(max_length=500)

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A rejection reason is required")
        return v


# ── Tasks ───────────────────────────────────────────────────────────
class TaskResponse(BaseModel):
    success: bool
    task_start_time: str | None
    task_end_time: str | None
    attendance: AttendanceRead


# ── Assignments ─────────────────────────────────────────────────────
class AssignmentRequest(BaseModel):
    date: str | None = None  # YYYY-MM-DD, defaults to today
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius: int | None = Field(default=None, gt=0, le=100_000)
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=200)
    start_time: str = "09:00"
    end_time: str = "18:00"
    task_based: bool = False
    geocode: bool = False

    @field_validator("date")
    @classmethod
    def _date(cls, v: str | None) -> str | None:
        if v is not None and not _DATE_RE.match(v):
            raise ValueError("date must be YYYY-MM-DD")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def _time(cls, v: str) -> str:
        return _check_hhmm(v)

    @model_validator(mode="after")
    def _target(self) -> "AssignmentRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        if self.latitude is None and not (self.address or self.city) and not self.task_based:
            raise ValueError("Provide coordinates, an address/city, or mark the day task-based")
        return self


class AssignmentRead(BaseModel):
    id: int
    employee_id: int
    date: str
    latitude: float | None
    longitude: float | None
    radius: int | None
    address: str | None
    city: str | None
    start_time: str
    end_time: str
    is_task_based: bool
    assigned_by: str | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


# ── Generic ────────────────────────────────────────────────────────
class DeleteResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    db: bool
    version: str
