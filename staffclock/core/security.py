"""
JWT access-token creation / verification.

Tokens are issued by the external identity provider; this service only
verifies them and reads the ``(sub, role)`` pair they carry.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from staffclock.core.config import settings

ROLE_EMPLOYEE = "employee"
ROLE_ADMIN = "admin"
VALID_ROLES = {ROLE_EMPLOYEE, ROLE_ADMIN}


def create_access_token(
    subject: str | Any,
    role: str = ROLE_EMPLOYEE,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "role": role, "type": "access"},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def decode_access_token(token: str) -> dict | None:
    """Return payload dict if *access* token is valid, else ``None``."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        if payload.get("type") != "access":
            return None
        if payload.get("role") not in VALID_ROLES:
            return None
        return payload
    except JWTError:
        return None
