# ============================================================================
# MANAGED DATABASE SERVICE - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Own the connection pool supervisor for the process lifetime
# CREATED: 18 OCT 2026
# ============================================================================
"""
Managed Database Service Main Application

FastAPI application that:
1. Builds the token manager and connection pool supervisor on startup
2. Fails startup if configuration, identity or the first pool is broken
3. Exposes health endpoints for the credential and pool state
4. Closes the pool (and retiring pools) on shutdown

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from __version__ import BUILD_DATE, __version__
from core.config import get_settings
from core.logging import ComponentType, configure_logging, get_logger
from health import HealthCheckRegistry, health_router
from health.checks import register_database_checks
from repositories.database import create_supervisor

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__, ComponentType.API)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup errors are not caught: a process that cannot authenticate to
    its database should not start serving.
    """
    logger.info(f"Starting managed database service v{__version__} (Build {BUILD_DATE})")

    settings = get_settings()
    supervisor = await create_supervisor(settings)
    try:
        await supervisor.get_pool()
    except BaseException:
        await supervisor.close()
        raise
    logger.info(f"Database pool ready (generation {supervisor.generation})")

    app.state.supervisor = supervisor
    app.state.health_registry = register_database_checks(
        HealthCheckRegistry(), supervisor, settings.database
    )
    logger.info(f"Health checks initialized ({len(app.state.health_registry)} checks registered)")

    yield

    logger.info("Shutting down managed database service...")
    await supervisor.close()
    logger.info("Managed database service stopped")


app = FastAPI(
    title="Managed Database Service",
    description="Short-lived credential management for a managed PostgreSQL service",
    version=__version__,
    lifespan=lifespan,
)

# Health check routes (no prefix - /livez, /readyz, /health)
app.include_router(health_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Managed Database Service",
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/api/v1/database/status")
async def database_status(request: Request):
    """Supervisor state, pool stats and credential status (no secrets)."""
    supervisor = request.app.state.supervisor
    body = {"pool": supervisor.get_stats()}
    if supervisor.token_manager is not None:
        body["credential"] = supervisor.token_manager.get_status()
    return body


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
