"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .core.config import settings
from .core.database import async_session_factory, bounded, close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    TransientError,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_structured_logging,
    setup_tracing,
)
from .routers import booking, health, invoice, itinerary, metrics, payment

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for the FastAPI application.
    """
    logger.info("Starting booking lifecycle service")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    try:
        setup_tracing(SERVICE_NAME)
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down booking lifecycle service")
    await close_db()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Booking Lifecycle API",
        description=(
            "RPC-over-HTTP API for the tourism portal's booking and payment lifecycle, "
            "itinerary sequencing and invoices"
        ),
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        """Liveness probe; does not touch the database."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "debug": settings.debug,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers within the store timeout",
        response_model=dict,
    )
    async def readiness_check():
        """Readiness probe; 503 when the database is unreachable."""
        try:
            async with async_session_factory() as session:
                await bounded(session.execute(text("SELECT 1")), "readiness")
        except TransientError as e:
            logger.warning("Readiness check failed", extra={"error": e.detail})
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "service": SERVICE_NAME, "checks": {"database": "failed"}},
            )

        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "checks": {"database": "ok"},
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        """Service information endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Booking-payment lifecycle, itinerary sequencing and invoices",
            "environment": settings.environment,
            "debug": settings.debug,
            "features": {
                "idempotency": True,
                "tracing": True,
                "problem_details": True,
                "metrics": True,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
                "redoc": "/redoc" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(payment.router)
    app.include_router(itinerary.router)
    app.include_router(invoice.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
