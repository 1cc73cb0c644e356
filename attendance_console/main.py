"""Attendance Console — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attendance_console.attendance.router import holidays_router, machine_formats_router
from attendance_console.attendance.router import router as attendance_router
from attendance_console.attendance.service import MachineFormatService
from attendance_console.auth.router import router as auth_router
from attendance_console.backup.router import router as backup_router
from attendance_console.common.exceptions import register_exception_handlers
from attendance_console.common.rate_limit import limiter
from attendance_console.config import settings
from attendance_console.corrections.router import employee_router, partner_router
from attendance_console.database import async_session_factory, create_tables
from attendance_console.employees.router import login_router
from attendance_console.employees.router import router as users_router
from attendance_console.leave.router import router as leave_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
        async with async_session_factory() as session:
            await MachineFormatService.ensure_default_formats(session)
            await session.commit()
        logger.info("Tables ensured and default machine formats seeded")
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Attendance Console",
        description="Attendance imports, monthly summaries, leave ledger and correction workflow",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers ({success, error} envelope, 429 included)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
    app.include_router(login_router, prefix="/api/v1/employee", tags=["employee"])
    app.include_router(employee_router, prefix="/api/v1/employee", tags=["employee"])
    app.include_router(partner_router, prefix="/api/v1/partner", tags=["partner"])
    app.include_router(attendance_router, prefix="/api/v1/attendance", tags=["attendance"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])
    app.include_router(
        machine_formats_router, prefix="/api/v1/machine-formats", tags=["machine-formats"]
    )
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(backup_router, prefix="/api/v1/backup", tags=["backup"])

    return app


app = create_app()
