"""
Chat SLA Analytics - Main Application
======================================

SLA analytics for customer-service chat conversations.

Modules:
- SLA Analytics: Per-conversation SLA metrics in wall-clock and business
  hours, compliance verdicts and aggregate reporting

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Office-hours calendar, calculators, compliance, reporting
- Infrastructure: Database, YAML configuration, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from chat_sla.config import RecalculationTrigger, settings
from chat_sla.core import ApplicationException

# Infrastructure
from chat_sla.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)

# SLA Module
from chat_sla.sla.application import RecalculationQuery, SLAMetricsService
from chat_sla.sla.infrastructure import (
    SQLAlchemyConversationRepository, SQLAlchemySLAMetricsRepository
)
from chat_sla.sla.infrastructure.external import SLAConfigManager, SLAScheduler
from chat_sla.sla.interfaces import sla_router

# Shared
from chat_sla.shared.api.middleware import (
    CorrelationIDMiddleware,
    ResponseTimeMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)
from chat_sla.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)

# Global service instances
sla_config_manager = None
sla_scheduler = None


async def sla_recalculation_job() -> None:
    """Background recalculation of the look-back window."""
    async with get_session_context() as session:
        service = SLAMetricsService(
            SQLAlchemyConversationRepository(session),
            SQLAlchemySLAMetricsRepository(session),
            sla_config_manager,
        )
        await service.recalculate(
            RecalculationQuery(batch_size=settings.recalculation_batch_size),
            trigger=RecalculationTrigger.RECALCULATION,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Load SLA configuration (fails fast when invalid)
    3. Initialize database
    4. Start SLA scheduler

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop config watcher
    3. Close database connections
    """
    global sla_config_manager, sla_scheduler

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Chat SLA Analytics", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Loading SLA configuration")
    sla_config_manager = SLAConfigManager()
    sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.start_watching()

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use migrations in production)
    if settings.environment == "development":
        try:
            await create_tables()
        except Exception as e:
            logger.warning(f"Database not available - running in degraded mode: {e}")

    if settings.sla_recalculation_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_recalculation_interval)
        await sla_scheduler.start(sla_recalculation_job)

    app.state.settings = settings
    app.state.sla_config_manager = sla_config_manager

    logger.info("Chat SLA Analytics started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Chat SLA Analytics")

    if sla_scheduler:
        await sla_scheduler.stop()

    if sla_config_manager:
        sla_config_manager.stop_watching()

    await close_database()

    logger.info("Chat SLA Analytics shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Chat SLA Analytics API",
    description="""
    ## Chat SLA Analytics

    Service-level analytics for customer-service chat conversations.

    **Metrics** (each in wall-clock time and in business hours):
    - Pickup: chat opened -> first agent assigned
    - First response: chat opened -> first agent message
    - Average response: mean customer -> agent reply gap
    - Resolution: chat opened -> chat closed

    **Endpoints:**
    - `GET /sla/metrics` - Aggregate compliance, averages and percentiles
    - `GET /sla/breaches` - Paginated breached conversations
    - `POST /sla/recalculate` - Recompute metrics for a date range
    - `GET /sla/conversations/{id}` - One conversation's SLA metrics
    - `GET /sla/config` - Office hours, targets and enabled metrics

    Unknown metrics (the event has not happened yet) are neither compliant
    nor breached and are excluded from compliance rates.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(ResponseTimeMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "sla_config": "loaded",
                        "sla_scheduler": "running"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including SLA configuration and
    scheduler state.
    """
    manager = getattr(request.app.state, "sla_config_manager", None)
    checks = {
        "sla_config": "loaded" if manager is not None else "not_loaded",
        "sla_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "GET /sla/metrics - Aggregate SLA metrics",
                    "GET /sla/breaches - List SLA breaches",
                    "POST /sla/recalculate - Recalculate SLA metrics",
                    "GET /sla/conversations/{id} - Conversation SLA metrics",
                    "POST /sla/conversations/{id}/recalculate - Recalculate one conversation",
                    "GET /sla/config - SLA configuration"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_sla.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
