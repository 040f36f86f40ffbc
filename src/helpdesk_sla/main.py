"""
Helpdesk SLA - Main Application
================================

SLA and escalation service for facility-management helpdesk tickets.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, matcher and state machine
- Infrastructure: Rule sources, ticket store, Slack, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from helpdesk_sla.config import Settings, get_settings
from helpdesk_sla.core import ApplicationException
from helpdesk_sla.escalation.application import EscalationService, SLAService
from helpdesk_sla.escalation.infrastructure import (
    EscalationRuleRepository,
    EscalationScheduler,
    HTTPRuleSource,
    InMemoryTicketStore,
    RuleFileManager,
    SlackEscalationNotifier,
)
from helpdesk_sla.escalation.interfaces import escalation_router
from helpdesk_sla.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from helpdesk_sla.shared.infrastructure.clock import Clock, SystemClock
from helpdesk_sla.shared.infrastructure.logging import get_logger, log_latency, setup_logging

logger = get_logger(__name__)


async def _load_rules(settings: Settings, repository: EscalationRuleRepository) -> Optional[RuleFileManager]:
    """Fill the repository from the rule endpoint or the rule file."""
    if settings.escalation_rules_url:
        records = await HTTPRuleSource(settings.escalation_rules_url).load()
        count = repository.replace_records(records)
        logger.info("Escalation rules fetched", extra={"url": settings.escalation_rules_url, "rule_count": count})
        return None

    manager = RuleFileManager(repository, settings.escalation_rules_path)
    if manager.path.exists():
        manager.load()
    else:
        logger.warning(
            "Escalation rule file not found, only default SLAs apply",
            extra={"path": str(manager.path)}
        )

    if settings.watch_escalation_rules:
        manager.start_watching()
    return manager


def create_app(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> FastAPI:
    """Build the FastAPI application; tests pass their own settings and clock."""
    settings = settings or get_settings()
    clock = clock or SystemClock()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Load escalation rules (endpoint or file) and watch the file
        3. Build the ticket store, services and Slack notifier
        4. Start the escalation ticker

        SHUTDOWN:
        1. Stop the ticker
        2. Stop the rule file watcher
        3. Close the Slack client
        """
        # === STARTUP ===
        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Helpdesk SLA service", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        rule_repository = EscalationRuleRepository()
        rule_file_manager = await _load_rules(settings, rule_repository)

        ticket_store = InMemoryTicketStore()
        notifier = SlackEscalationNotifier(
            settings.slack_webhook_url,
            channel=settings.slack_channel,
            timeout=settings.slack_timeout_seconds
        )
        sla_service = SLAService(rule_repository, clock)
        escalation_service = EscalationService(ticket_store, ticket_store.save, clock, notifier)

        async def escalation_tick():
            """Background automatic escalation job."""
            with log_latency(logger, "escalation_tick"):
                await escalation_service.run_tick()

        scheduler = EscalationScheduler(settings.escalation_interval_seconds)
        scheduler.start(escalation_tick)

        # Store services in app state for dependency injection
        app.state.settings = settings
        app.state.clock = clock
        app.state.rule_repository = rule_repository
        app.state.rule_file_manager = rule_file_manager
        app.state.ticket_store = ticket_store
        app.state.sla_service = sla_service
        app.state.escalation_service = escalation_service
        app.state.scheduler = scheduler

        logger.info("Helpdesk SLA service started", extra={"rule_count": len(rule_repository)})

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down Helpdesk SLA service")
        scheduler.stop()
        if rule_file_manager:
            rule_file_manager.stop_watching()
        await notifier.close()
        logger.info("Helpdesk SLA service shutdown complete")

    app = FastAPI(
        title="Helpdesk SLA API",
        description="""
    ## Helpdesk SLA & Escalation Service

    Matches tickets against the escalation rule table, tracks SLA health and
    escalates tickets through levels L0 to L5.

    **Endpoints (prefix `/helpdesk`):**
    - `POST /tickets` - Ingest tickets
    - `GET /tickets/{id}/sla` - SLA targets, health and breach flag
    - `GET /tickets/{id}/timeline` - Escalation path and elapsed time
    - `POST /tickets/{id}/escalate` - Manual escalation (up to L4, sets P2)
    - `POST /tickets/{id}/status` - Status workflow step
    - `POST /escalations/run` - Run the automatic evaluator once
    - `GET /dashboard` - SLA health across all tickets
    - `GET /rules/...` - Rule catalogue lookups

    **Automatic escalation:** L0 -> L1 after 4h, L1 -> L2 after 8h,
    L2 -> L3 after 16h (hours since creation); P4 tickets move to P3.
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(escalation_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        state = request.app.state
        manager = getattr(state, "rule_file_manager", None)
        scheduler = getattr(state, "scheduler", None)

        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "escalation_rules": len(state.rule_repository) if hasattr(state, "rule_repository") else 0,
                "rule_source": "http" if settings.escalation_rules_url else "file",
                "rule_watcher": "watching" if manager and manager.is_watching else "stopped",
                "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
                "slack": "configured" if settings.slack_webhook_url else "not_configured",
            }
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
                "escalation": {
                    "prefix": "/helpdesk",
                    "endpoints": [
                        "POST /helpdesk/tickets - Ingest tickets",
                        "GET /helpdesk/tickets/{id}/sla - Ticket SLA status",
                        "GET /helpdesk/tickets/{id}/timeline - Escalation timeline",
                        "POST /helpdesk/tickets/{id}/escalate - Manual escalation",
                        "POST /helpdesk/tickets/{id}/status - Status transition",
                        "POST /helpdesk/escalations/run - Run escalation pass",
                        "GET /helpdesk/dashboard - SLA dashboard",
                        "GET /helpdesk/rules/stats - Rule table statistics"
                    ]
                }
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "helpdesk_sla.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.log_level.lower()
    )
