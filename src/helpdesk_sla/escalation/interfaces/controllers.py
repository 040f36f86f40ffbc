"""
Escalation Controllers (API Routes)
====================================

FastAPI routes exposing the escalation engine.

Controllers are thin - they delegate to application services kept on
`app.state` by the application lifespan.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from helpdesk_sla.config import Priority, SLAHealth
from helpdesk_sla.core import (
    InvalidTicketTimestampException, ResourceNotFoundException, ValidationException
)
from helpdesk_sla.escalation.application import EscalationService, SLAService
from helpdesk_sla.escalation.application.dto import (
    DashboardItem,
    DashboardResponse,
    DashboardSummary,
    EscalationDecisionResponse,
    EscalationRunResponse,
    IngestResponse,
    ManualEscalationResponse,
    RuleResponse,
    RuleStatsResponse,
    SLAConfigResponse,
    SLAStatusResponse,
    StatusTransitionRequest,
    TicketIngestRequest,
    TicketResponse,
    TicketSLAResponse,
    TimelineResponse,
)
from helpdesk_sla.escalation.domain import Ticket
from helpdesk_sla.escalation.infrastructure import EscalationRuleRepository, InMemoryTicketStore
from helpdesk_sla.shared.infrastructure.logging import get_context_logger, get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/helpdesk", tags=["Helpdesk Escalation"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "id": "HD-1001",
    "category": "Technical",
    "subcategory": "HVAC",
    "description": "AC not cooling",
    "priority": "P1 - Critical",
    "status": "Open",
    "assigned_level": "L0",
    "created_at": "2024-01-15T10:00:00Z",
    "ticket_type": "Complaint",
    "issue_type": "Maintenance"
}

TICKET_SLA_RESPONSE_EXAMPLE = {
    "ticket": {**TICKET_CREATE_EXAMPLE, "priority": "P1", "priority_label": "P1 - Critical", "last_escalated_at": None},
    "sla": {
        "level": "L0",
        "response_time_minutes": 15,
        "resolution_time_minutes": 60,
        "response_time_hours": 0.3,
        "resolution_time_hours": 1.0,
        "assignee": "L0 Technician"
    },
    "sla_status": {
        "breached": True,
        "remaining_minutes": 0,
        "remaining_hours": 0,
        "resolution_time_hours": 1.0,
        "percentage_used": 100,
        "status": "Critical"
    },
    "is_breached": True,
    "should_auto_escalate": True,
    "matched_rule": True
}


# ========== Dependencies ==========

def get_sla_service(request: Request) -> SLAService:
    return request.app.state.sla_service


def get_escalation_service(request: Request) -> EscalationService:
    return request.app.state.escalation_service


def get_ticket_store(request: Request) -> InMemoryTicketStore:
    return request.app.state.ticket_store


def get_rule_repository(request: Request) -> EscalationRuleRepository:
    return request.app.state.rule_repository


async def _load_ticket(store: InMemoryTicketStore, ticket_id: str) -> Ticket:
    ticket = await store.get(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", ticket_id)
    return ticket


def _parse_priority(value: Optional[str]) -> Optional[Priority]:
    if value is None:
        return None
    try:
        return Priority.parse(value)
    except ValueError:
        raise ValidationException(f"Unknown priority: {value}", details={"priority": value})


# ========== Ticket Routes ==========

@router.post(
    "/tickets",
    response_model=IngestResponse,
    summary="Ingest tickets for escalation tracking",
    description="""
    Push a batch of tickets into the store. Tickets are keyed by `id`;
    an existing ticket with the same ID is replaced.

    **Priority**: `P1`..`P4`, or the labels `P1 - Critical`, `P2 - High`,
    `P3 - Medium`, `P4 - Low`

    **Status**: `Open`, `WIP`, `Resolved`, `Closed`, `Lapsed`
    """,
    responses={200: {"content": {"application/json": {"example": {"created": 1, "updated": 0}}}}}
)
async def ingest_tickets(
    payload: TicketIngestRequest,
    store: InMemoryTicketStore = Depends(get_ticket_store)
):
    created, updated = await store.upsert_many(dto.to_domain() for dto in payload.tickets)
    logger.info("Ticket ingestion complete", extra={"tickets_created": created, "tickets_updated": updated})
    return IngestResponse(created=created, updated=updated)


@router.get(
    "/tickets/{ticket_id}/sla",
    response_model=TicketSLAResponse,
    summary="Get ticket SLA status",
    responses={200: {"content": {"application/json": {"example": TICKET_SLA_RESPONSE_EXAMPLE}}}}
)
async def get_ticket_sla(
    ticket_id: str,
    store: InMemoryTicketStore = Depends(get_ticket_store),
    sla_service: SLAService = Depends(get_sla_service)
):
    """
    SLA targets at the current level, window health and breach flags.

    Without a matching rule `sla` is null and the status uses the
    priority default window.
    """
    ticket = await _load_ticket(store, ticket_id)
    sla = sla_service.get_sla_for_ticket(ticket)

    return TicketSLAResponse(
        ticket=TicketResponse.from_domain(ticket),
        sla=SLAConfigResponse.from_domain(sla) if sla else None,
        sla_status=SLAStatusResponse.from_domain(sla_service.calculate_sla_status(ticket)),
        is_breached=sla_service.is_sla_breached(ticket),
        should_auto_escalate=sla_service.should_auto_escalate(ticket),
        matched_rule=sla is not None,
    )


@router.get(
    "/tickets/{ticket_id}/timeline",
    response_model=TimelineResponse,
    summary="Get ticket escalation timeline"
)
async def get_ticket_timeline(
    ticket_id: str,
    store: InMemoryTicketStore = Depends(get_ticket_store),
    sla_service: SLAService = Depends(get_sla_service)
):
    ticket = await _load_ticket(store, ticket_id)
    return TimelineResponse.from_domain(sla_service.build_timeline(ticket))


@router.post(
    "/tickets/{ticket_id}/escalate",
    response_model=ManualEscalationResponse,
    summary="Escalate a ticket one level",
    description="Manual escalation moves one level up to L4 and sets priority P2."
)
async def escalate_ticket(
    ticket_id: str,
    request: Request,
    store: InMemoryTicketStore = Depends(get_ticket_store),
    escalation_service: EscalationService = Depends(get_escalation_service)
):
    request_logger = get_context_logger(__name__, getattr(request.state, "correlation_id", None))

    decision = await escalation_service.escalate_manually(ticket_id)
    ticket = await _load_ticket(store, ticket_id)
    request_logger.info("Manual escalation requested", extra={"ticket_id": ticket_id, "escalated": decision is not None})

    return ManualEscalationResponse(
        escalated=decision is not None,
        ticket=TicketResponse.from_domain(ticket),
        decision=EscalationDecisionResponse.from_domain(decision) if decision else None,
    )


@router.post(
    "/tickets/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Move a ticket along its status workflow",
    description="Allowed steps: Open -> WIP -> Resolved -> Closed."
)
async def change_ticket_status(
    ticket_id: str,
    payload: StatusTransitionRequest,
    escalation_service: EscalationService = Depends(get_escalation_service)
):
    ticket = await escalation_service.transition_status(ticket_id, payload.status)
    return TicketResponse.from_domain(ticket)


# ========== Escalation Routes ==========

@router.post(
    "/escalations/run",
    response_model=EscalationRunResponse,
    summary="Run one automatic escalation pass now"
)
async def run_escalations(
    escalation_service: EscalationService = Depends(get_escalation_service)
):
    return EscalationRunResponse(**await escalation_service.run_tick())


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="SLA health across all tickets"
)
async def get_dashboard(
    store: InMemoryTicketStore = Depends(get_ticket_store),
    sla_service: SLAService = Depends(get_sla_service)
):
    items = []
    counts = {SLAHealth.ON_TRACK: 0, SLAHealth.WARNING: 0, SLAHealth.CRITICAL: 0}
    breached = 0

    for ticket in await store.list():
        try:
            status = sla_service.calculate_sla_status(ticket)
            is_breached = sla_service.is_sla_breached(ticket)
        except InvalidTicketTimestampException as e:
            logger.warning("Dashboard skipped SLA for ticket", extra={"ticket_id": ticket.id, "error": e.message})
            items.append(DashboardItem(
                ticket_id=ticket.id,
                priority=ticket.priority,
                status=ticket.status,
                assigned_level=ticket.assigned_level,
                is_breached=False,
            ))
            continue

        counts[status.status] += 1
        breached += int(is_breached)
        items.append(DashboardItem(
            ticket_id=ticket.id,
            priority=ticket.priority,
            status=ticket.status,
            assigned_level=ticket.assigned_level,
            is_breached=is_breached,
            sla_status=SLAStatusResponse.from_domain(status),
        ))

    total = len(items)
    return DashboardResponse(
        tickets=items,
        summary=DashboardSummary(
            total_tickets=total,
            on_track_count=counts[SLAHealth.ON_TRACK],
            warning_count=counts[SLAHealth.WARNING],
            critical_count=counts[SLAHealth.CRITICAL],
            breached_count=breached,
            breach_rate=round(breached / total * 100, 2) if total else 0.0,
        )
    )


# ========== Rule Catalogue Routes ==========

@router.get("/rules/ticket-types", response_model=List[str], summary="Distinct ticket types")
async def list_ticket_types(rules: EscalationRuleRepository = Depends(get_rule_repository)):
    return rules.ticket_types()


@router.get("/rules/issue-types", response_model=List[str], summary="Issue types, optionally per ticket type")
async def list_issue_types(
    ticket_type: Optional[str] = Query(None),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return rules.issue_types(ticket_type)


@router.get("/rules/categories", response_model=List[str], summary="Categories for the chosen types")
async def list_categories(
    ticket_type: Optional[str] = Query(None),
    issue_type: Optional[str] = Query(None),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return rules.categories(ticket_type, issue_type)


@router.get("/rules/sub-categories", response_model=List[str], summary="Sub-categories for the chosen keys")
async def list_sub_categories(
    ticket_type: Optional[str] = Query(None),
    issue_type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return rules.sub_categories(ticket_type, issue_type, category)


@router.get("/rules/issues", response_model=List[str], summary="Issues for the chosen keys")
async def list_issues(
    ticket_type: Optional[str] = Query(None),
    issue_type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sub_category: Optional[str] = Query(None),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return rules.issues(ticket_type, issue_type, category, sub_category)


@router.get("/rules/priorities", response_model=List[str], summary="Priorities for the chosen keys")
async def list_priorities(
    ticket_type: Optional[str] = Query(None),
    issue_type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sub_category: Optional[str] = Query(None),
    issue: Optional[str] = Query(None),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return rules.priorities(ticket_type, issue_type, category, sub_category, issue)


@router.get("/rules/search", response_model=List[RuleResponse], summary="Search rules")
async def search_rules(
    q: str = Query("", description="Substring matched against all rule keys"),
    ticket_type: Optional[str] = Query(None),
    priority: Optional[str] = Query(None, description="P1..P4"),
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    """Case-insensitive search, optionally narrowed by ticket type and priority."""
    results = rules.search(q)
    if ticket_type:
        results = [rule for rule in results if rule.ticket_type == ticket_type]
    parsed_priority = _parse_priority(priority)
    if parsed_priority is not None:
        results = [rule for rule in results if rule.priority == parsed_priority]
    return [RuleResponse(**rule.to_dict()) for rule in results]


@router.get("/rules/stats", response_model=RuleStatsResponse, summary="Rule table statistics")
async def get_rule_stats(rules: EscalationRuleRepository = Depends(get_rule_repository)):
    return RuleStatsResponse(**rules.stats())


@router.get(
    "/rules/by-ticket-type/{ticket_type}",
    response_model=List[RuleResponse],
    summary="All rules for one ticket type"
)
async def get_rules_by_ticket_type(
    ticket_type: str,
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return [RuleResponse(**rule.to_dict()) for rule in rules.rules_by_ticket_type(ticket_type)]


@router.get(
    "/rules/by-priority/{priority}",
    response_model=List[RuleResponse],
    summary="All rules for one priority"
)
async def get_rules_by_priority(
    priority: str,
    rules: EscalationRuleRepository = Depends(get_rule_repository)
):
    return [RuleResponse(**rule.to_dict()) for rule in rules.rules_by_priority(_parse_priority(priority))]
