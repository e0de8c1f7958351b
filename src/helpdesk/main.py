"""
Helpdesk Service - Main Application
===================================

Ticketing core with approval workflows, rule-based automation and SLA
tracking.

Modules:
- Workflow: multi-stage approval lifecycle and ticket history
- Automation: prioritization, round-robin assignment, escalation rules
- SLA: policy matching, metric tracking, breach detection, periodic sweep

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and pure rule evaluation
- Infrastructure: Database, YAML rules, Slack, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from helpdesk.automation.interfaces import automation_router
from helpdesk.bootstrap import get_rule_provider, get_sweeper
from helpdesk.config import settings
from helpdesk.core import ApplicationException
from helpdesk.infrastructure.database import close_database, create_tables, init_database
from helpdesk.shared.api import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from helpdesk.shared.infrastructure.events import get_event_bus
from helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from helpdesk.sla.infrastructure import SlackClient, SlackNotifier, SLAScheduler
from helpdesk.sla.interfaces import sla_router
from helpdesk.workflow.interfaces import workflow_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load automation rules and watch the rules file
    4. Subscribe the Slack notifier to the event bus
    5. Start the SLA sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler, waiting for an in-flight sweep
    2. Stop the rules watcher
    3. Drain event handlers, close Slack client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    try:
        await create_tables()
    except (OSError, SQLAlchemyError) as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    rules = get_rule_provider()
    if settings.watch_rules_file:
        rules.start_watching()

    bus = get_event_bus()
    slack_client = SlackClient(settings)
    if slack_client.enabled:
        SlackNotifier(slack_client).register(bus)
    else:
        logger.info("Slack webhook not configured - notifications disabled")

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = SLAScheduler(
            interval_seconds=settings.sla_sweep_interval_seconds,
            shutdown_timeout=settings.sla_shutdown_timeout_seconds,
        )
        await scheduler.start(get_sweeper().sweep)

    app.state.scheduler = scheduler
    app.state.rules = rules
    logger.info("Helpdesk Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk Service")

    if scheduler:
        await scheduler.stop()
    rules.stop_watching()
    await bus.drain(timeout=5)
    bus.clear_subscribers()
    await slack_client.close()
    await close_database()

    logger.info("Helpdesk Service shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Helpdesk API",
        description="""
    ## Helpdesk Ticketing Core

    - **Workflow**: Draft -> InApproval (N stages) -> Approved | Rejected -> InProgress -> Completed -> Closed
    - **Automation**: keyword prioritization, round-robin assignment, time-based escalation
    - **SLA**: policy matching, response/resolution/approval tracking, breach detection and acknowledgment
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Module Routers ===
    app.include_router(workflow_router)
    app.include_router(automation_router)
    app.include_router(sla_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        scheduler = getattr(request.app.state, "scheduler", None)
        rules = getattr(request.app.state, "rules", None)
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
                "automation_rules": "watching" if rules and rules.is_watching else "static",
            }
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "modules": ["/workflows", "/tickets", "/automation", "/sla"],
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
