"""
FastAPI application entry point for the publication portal.

This module provides the main FastAPI application with:
- Health and readiness endpoints
- Session cookie authentication and portal role gating
- Request logging with correlation IDs
- Prometheus metrics
- OpenTelemetry distributed tracing
- CORS, security headers, and rate limiting
- Database connection pool management
- Graceful startup and shutdown
"""

import structlog
import uvicorn
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest

from pubportal.config import Settings, get_settings
from pubportal.db import close_db_pool, create_schema, get_db_pool, init_db_pool
from pubportal.errors import register_exception_handlers
from pubportal.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware, SessionMiddleware
from pubportal.rate_limit import limiter
from pubportal.routers import admin, auth, me, professor, public, reports, reviews, staff
from pubportal.shared.structured_logger import configure_logging
from pubportal.shared.tracing import configure_tracing, instrument_app, shutdown_tracing

settings: Settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.log_format == "json",
    service_name=settings.app_name,
    environment=settings.environment,
)

logger = structlog.get_logger(__name__)

# ============================================================================
# Prometheus Metrics
# ============================================================================

database_connections_active = Gauge(
    "database_connections_active",
    "Active database connections"
)

database_connections_idle = Gauge(
    "database_connections_idle",
    "Idle database connections in pool"
)


def _update_pool_metrics() -> None:
    try:
        pool = get_db_pool()
    except RuntimeError:
        return
    database_connections_active.set(pool.get_size())
    database_connections_idle.set(pool.get_idle_size())


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - OpenTelemetry tracing setup
    - Database connection pool initialization (and schema, when enabled)
    - Graceful shutdown and resource cleanup
    """
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    try:
        if settings.tracing_enabled:
            logger.info("initializing_tracing", otlp_endpoint=settings.tracing_otlp_endpoint)
            configure_tracing(
                service_name=settings.app_name,
                service_version=settings.app_version,
                otlp_endpoint=settings.tracing_otlp_endpoint,
                sampling_rate=settings.tracing_sample_rate,
            )
            logger.info("tracing_initialized")

        pool = await init_db_pool()

        async with pool.acquire() as conn:
            version = await conn.fetchval("SELECT version()")
            logger.info("database_connected", postgres_version=version)

        if settings.database_apply_schema:
            await create_schema()

        _update_pool_metrics()

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    finally:
        logger.info("application_shutting_down")

        try:
            await close_db_pool()

            if settings.tracing_enabled:
                logger.info("shutting_down_tracing")
                shutdown_tracing()

            logger.info("application_shutdown_complete")

        except Exception as e:
            logger.error("application_shutdown_failed", error=str(e), exc_info=True)


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Publication management API with admin, staff and professor portals, "
        "a review workflow and public search."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter

# ============================================================================
# Middleware Configuration
# ============================================================================

# Added innermost first: the session gate runs after logging and headers.
app.add_middleware(SessionMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)

if settings.cors_enabled:
    logger.info("configuring_cors", origins=settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

if settings.tracing_enabled:
    instrument_app(app)

register_exception_handlers(app)

# ============================================================================
# Health and Readiness Endpoints
# ============================================================================

@app.get("/health", tags=["Health"], response_class=JSONResponse)
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns basic health status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@app.get("/ready", tags=["Health"], response_class=JSONResponse)
async def readiness_check():
    """
    Readiness check endpoint.

    Verifies database connectivity; 503 when the database is unreachable.
    """
    checks = {"database": "unknown"}

    try:
        async with get_db_pool().acquire() as conn:
            await conn.fetchval("SELECT 1")
            checks["database"] = "healthy"
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        checks["database"] = "unhealthy"

    _update_pool_metrics()

    all_healthy = all(value == "healthy" for value in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "not_ready",
            "service": settings.app_name,
            "version": settings.app_version,
            "checks": checks
        }
    )


# ============================================================================
# Metrics Endpoint
# ============================================================================

if settings.metrics_enabled:
    @app.get(settings.metrics_endpoint, tags=["Monitoring"], response_class=PlainTextResponse)
    async def metrics() -> Response:
        """Prometheus metrics in the text exposition format."""
        _update_pool_metrics()
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# API Router Registration
# ============================================================================

app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(me.router, prefix=settings.api_prefix)
app.include_router(admin.router, prefix=settings.api_prefix)
app.include_router(reviews.router, prefix=settings.api_prefix)
app.include_router(reports.router, prefix=settings.api_prefix)
app.include_router(staff.router, prefix=settings.api_prefix)
app.include_router(professor.router, prefix=settings.api_prefix)
app.include_router(public.router, prefix=settings.api_prefix)

# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

    uvicorn.run(
        "pubportal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
