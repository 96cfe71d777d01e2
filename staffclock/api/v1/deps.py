"""
FastAPI dependencies — auth guards, database session and service collaborators.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.core.security import ROLE_ADMIN, decode_access_token
from staffclock.db.session import async_session_factory
from staffclock.schemas.attendance import ClockInRequest
from staffclock.services.attendance import Evidence
from staffclock.services.dispatcher import SideEffectDispatcher
from staffclock.services.geocoding import Geocoder, NominatimGeocoder
from staffclock.services.location import Coordinates, LocationValidator

# auto_error=False so the cookie can be checked when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Verified caller: employee display ID or admin ID, plus role."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Collaborators ───────────────────────────────────────────────────
def get_geocoder() -> Geocoder:
    return NominatimGeocoder()


def get_validator(geocoder: Geocoder = Depends(get_geocoder)) -> LocationValidator:
    return LocationValidator(geocoder)


def get_dispatcher() -> SideEffectDispatcher:
    return SideEffectDispatcher(async_session_factory)


def evidence_from(request: Request, body: ClockInRequest | None = None) -> Evidence:
    """Submission evidence: body fields plus client address and User-Agent."""
    coordinates = None
    if body is not None and body.latitude is not None and body.longitude is not None:
        coordinates = Coordinates(body.latitude, body.longitude)
    return Evidence(
        coordinates=coordinates,
        location_text=((body.location if body else None) or "").strip() or None,
        ip_address=request.client.host if request.client else None,
        device_info=(request.headers.get("user-agent") or "")[:500] or None,
        photo=body.photo if body else None,
    )


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
) -> CurrentUser:
    """Decode JWT from Header OR Cookie."""

    # Priority: Header > Cookie
    final_token = token
    if not final_token and access_token:
        # Cookie value may be "Bearer <token>" or just "<token>"
        if access_token.startswith("Bearer "):
            final_token = access_token.split(" ", 1)[1]
        else:
            final_token = access_token

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None:
        raise credentials_exc

    subject: str | None = payload.get("sub")
    if not subject:
        raise credentials_exc
    return CurrentUser(id=subject, role=payload["role"])


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Only allow admin role to proceed."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def require_employee(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Employee self-service routes act on the caller's own record."""
    if current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Employee token required",
        )
    return current_user
