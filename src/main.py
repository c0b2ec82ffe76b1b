"""
FastAPI application entry point.

Builds the app with create_app(): routers, CORS and the catch-all error
handler. Tests import `app` and swap the record store through
dependency overrides.

For local development:
    uvicorn src.main:app --reload

For production:
    uvicorn src.main:app --host 0.0.0.0 --port 8000 --workers 4
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import activity, clients, health, records
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown hook.

    Reports missing configuration at startup instead of failing on the
    first request that needs it.
    """
    # Startup
    settings = get_settings()

    logger.info(
        "Coach portal tracking API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": settings.snowflake_mock_mode,
        }
    )

    # Validate configuration
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    # Shutdown
    logger.info("Coach portal tracking API shutting down")


def create_app() -> FastAPI:
    """
    Create the FastAPI application.

    Client, activity and record routes all hang off /api/v1/clients.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Client tracking for a coaching portal.

        ## Features

        - Training calendar merged from workouts, daily feedback and load/effort logs
        - Subscription status derived from payments, end date and exemption
        - RM/PR records with a heads-up when other clients already match them

        ## Authentication

        All endpoints require an API key provided in the `X-API-Key` header.
        The caller's identity is passed in `X-User-Email`; payment and
        subscription endpoints are restricted to coaches.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Allowed origins come from CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        clients.router,
        prefix="/api/v1/clients",
        tags=["Clients"],
    )

    app.include_router(
        activity.router,
        prefix="/api/v1/clients",
        tags=["Activity"],
    )

    app.include_router(
        records.router,
        prefix="/api/v1/clients",
        tags=["Records"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Pointer to the docs."""
        return {
            "message": "Coach Portal Tracking API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Anything the routes did not translate becomes a plain 500.

        The traceback is logged, never returned.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Imported by uvicorn
app = create_app()


# Local run without the uvicorn CLI
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
