"""
Public health check.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffclock.api.v1.deps import get_db
from staffclock.core.config import settings
from staffclock.schemas.attendance import HealthResponse

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Database connectivity."""
    result = HealthResponse(status="degraded", db=False, version=settings.VERSION)
    try:
        await db.execute(select(1))
        result.db = True
        result.status = "ok"
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
    return result
