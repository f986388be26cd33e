"""FastAPI application entry point."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from explorer_booking.api.v1.router import api_router
from explorer_booking.config import settings
from explorer_booking.core.background_tasks import (
    start_status_automation,
    stop_status_automation,
)
from explorer_booking.core.exceptions import AppException
from explorer_booking.core.middleware import RequestLoggingMiddleware
from explorer_booking.database import close_db, init_db
from explorer_booking.services.booking_status_service import BookingStatusManager
from explorer_booking.services.factory import build_status_manager, close_status_manager

logger = logging.getLogger(__name__)


def create_application(manager: BookingStatusManager | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        manager: Status manager to serve; built from settings when omitted

    Returns:
        FastAPI: Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events."""
        # Startup
        if settings.booking_store == "sql" and settings.debug:
            await init_db()

        status_manager = manager or build_status_manager()
        app.state.status_manager = status_manager

        automation_tasks: list[asyncio.Task] = []
        if settings.automation_enabled and settings.transition_scheduler == "asyncio":
            automation_tasks = start_status_automation(status_manager)
            logger.info("Booking status automation started")

        yield

        # Shutdown
        if automation_tasks:
            await stop_status_automation(automation_tasks)
        await close_status_manager(status_manager)
        await close_db()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Explorer Booking - Booking Status API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle custom application exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_content(),
            headers=exc.headers,
        )

    # Middleware (order matters - first added = last executed)
    # 1. Request logging
    app.add_middleware(RequestLoggingMiddleware)

    # 2. CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 3. Gzip compression (innermost)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "explorer_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
