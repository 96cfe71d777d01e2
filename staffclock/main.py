"""
Staffclock — Application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/` package; `api/` is the HTTP surface over it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from staffclock.api.v1.api import api_router
from staffclock.core.config import settings
from staffclock.core.exceptions import register_exception_handlers
from staffclock.core.rate_limit import limiter
from staffclock.db.base import Base
from staffclock.db.session import engine

# Ensure all models are imported so metadata.create_all can see them
from staffclock.models.assignment import DailyLocationAssignment  # noqa: F401
from staffclock.models.attendance import AttendanceRecord  # noqa: F401
from staffclock.models.employee import Employee  # noqa: F401
from staffclock.models.notification import AdminNotification  # noqa: F401
from staffclock.models.vehicle import Vehicle  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    logger.info("Staffclock v%s started (timezone %s)", settings.VERSION, settings.TIMEZONE_OFFSET)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Field workforce attendance: geofenced clock-in, approvals and lockout",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Submission rate limiting (slowapi reads the limiter from app state)
    application.state.limiter = limiter

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
