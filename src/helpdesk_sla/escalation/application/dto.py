"""
Escalation Application DTOs
============================

Data Transfer Objects for the escalation API layer.

These Pydantic models handle request validation and response
serialization. Domain objects stay plain dataclasses; conversion happens
here and nowhere else.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from helpdesk_sla.config import EscalationLevel, Priority, TicketStatus
from helpdesk_sla.shared.infrastructure.clock import as_utc
from helpdesk_sla.escalation.domain import (
    EscalationDecision, EscalationTimeline, SLAConfig, SLAStatus, Ticket, format_minutes
)


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for a single ticket pushed into the store."""
    id: str = Field(..., min_length=1, description="Unique ticket ID")
    category: str = Field(..., min_length=1, description="Ticket category")
    subcategory: str = Field(default="", description="Ticket sub-category")
    description: str = Field(default="", description="Free text, also matched as the rule 'issue'")
    priority: Priority = Field(..., description="P1..P4 or a label such as 'P2 - High'")
    status: TicketStatus = Field(default=TicketStatus.OPEN, description="Ticket status")
    assigned_level: EscalationLevel = Field(default=EscalationLevel.L0, description="Current escalation level")
    created_at: datetime = Field(..., description="Ticket creation timestamp")
    ticket_type: Optional[str] = Field(None, description="Ticket type used for rule matching")
    issue_type: Optional[str] = Field(None, description="Issue type used for rule matching")
    last_escalated_at: Optional[datetime] = Field(None, description="When the current level began")

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        """Accept both 'P1' and 'P1 - Critical'."""
        return Priority.parse(v)

    @field_validator("assigned_level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("last_escalated_at")
    @classmethod
    def validate_last_escalated_at(cls, v: Optional[datetime], info) -> Optional[datetime]:
        """Ensure last_escalated_at is not before created_at."""
        created_at = info.data.get("created_at")
        if v is not None and created_at is not None and as_utc(v) < as_utc(created_at):
            raise ValueError("last_escalated_at cannot be before created_at")
        return v

    def to_domain(self) -> Ticket:
        return Ticket(
            id=self.id,
            category=self.category,
            subcategory=self.subcategory,
            description=self.description,
            priority=self.priority,
            created_at=self.created_at,
            status=self.status,
            assigned_level=self.assigned_level,
            ticket_type=self.ticket_type,
            issue_type=self.issue_type,
            last_escalated_at=self.last_escalated_at,
        )


class TicketIngestRequest(BaseModel):
    """Request model for ticket ingestion."""
    tickets: List[TicketCreateDTO] = Field(..., description="List of tickets to ingest")


class StatusTransitionRequest(BaseModel):
    status: TicketStatus = Field(..., description="Target status")


# ========== Response DTOs ==========

class IngestResponse(BaseModel):
    """Response model for ticket ingestion."""
    created: int = Field(..., description="Number of new tickets stored")
    updated: int = Field(..., description="Number of existing tickets replaced")


class TicketResponse(BaseModel):
    id: str
    category: str
    subcategory: str
    description: str
    priority: Priority
    priority_label: str
    status: TicketStatus
    assigned_level: EscalationLevel
    created_at: Optional[datetime]
    ticket_type: Optional[str] = None
    issue_type: Optional[str] = None
    last_escalated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            category=ticket.category,
            subcategory=ticket.subcategory,
            description=ticket.description,
            priority=ticket.priority,
            priority_label=Priority.parse(ticket.priority).label,
            status=ticket.status,
            assigned_level=ticket.assigned_level,
            created_at=ticket.created_at,
            ticket_type=ticket.ticket_type,
            issue_type=ticket.issue_type,
            last_escalated_at=ticket.last_escalated_at,
        )


class SLAConfigResponse(BaseModel):
    """SLA targets at one level."""
    level: str
    response_time_minutes: int
    resolution_time_minutes: int
    response_time_hours: float
    resolution_time_hours: float
    assignee: str

    @classmethod
    def from_domain(cls, sla: SLAConfig) -> "SLAConfigResponse":
        return cls(**sla.to_dict())


class SLAStatusResponse(BaseModel):
    """Response model for SLA health of a single ticket."""
    breached: bool = Field(..., description="Whether the resolution window is used up")
    remaining_minutes: float = Field(..., description="Minutes left (0 if breached)")
    remaining_hours: float
    resolution_time_hours: float
    percentage_used: int = Field(..., ge=0, le=100)
    status: str = Field(..., description="On Track / Warning / Critical")

    @classmethod
    def from_domain(cls, status: SLAStatus) -> "SLAStatusResponse":
        return cls(**status.to_dict())


class TicketSLAResponse(BaseModel):
    """Response model for ticket SLA information."""
    ticket: TicketResponse
    sla: Optional[SLAConfigResponse] = Field(None, description="Targets at the current level; null without a matching rule")
    sla_status: SLAStatusResponse
    is_breached: bool
    should_auto_escalate: bool
    matched_rule: bool


class TimelineResponse(BaseModel):
    """Escalation path and elapsed-time figures for timeline views."""
    ticket_id: str
    current_level: str
    next_level: str
    path: List[SLAConfigResponse]
    total_elapsed_minutes: float
    total_elapsed: str
    minutes_at_current_level: float
    time_at_current_level: str

    @classmethod
    def from_domain(cls, timeline: EscalationTimeline) -> "TimelineResponse":
        return cls(
            ticket_id=timeline.ticket_id,
            current_level=timeline.current_level,
            next_level=timeline.next_level,
            path=[SLAConfigResponse.from_domain(sla) for sla in timeline.path],
            total_elapsed_minutes=timeline.total_elapsed_minutes,
            total_elapsed=format_minutes(max(0, int(timeline.total_elapsed_minutes))),
            minutes_at_current_level=timeline.minutes_at_current_level,
            time_at_current_level=format_minutes(max(0, int(timeline.minutes_at_current_level))),
        )


class EscalationDecisionResponse(BaseModel):
    ticket_id: str
    trigger: str
    from_level: str
    to_level: str
    from_priority: str
    to_priority: str

    @classmethod
    def from_domain(cls, decision: EscalationDecision) -> "EscalationDecisionResponse":
        return cls(**decision.to_dict())


class ManualEscalationResponse(BaseModel):
    """Result of a manual 'Escalate' action."""
    escalated: bool = Field(..., description="False when the ticket is at the manual ceiling or not escalatable")
    ticket: TicketResponse
    decision: Optional[EscalationDecisionResponse] = None


class EscalationRunResponse(BaseModel):
    """Summary of one automatic escalation pass."""
    tickets_evaluated: int
    tickets_escalated: int
    notifications_sent: int
    escalations: List[EscalationDecisionResponse] = Field(default_factory=list)


class DashboardItem(BaseModel):
    ticket_id: str
    priority: Priority
    status: TicketStatus
    assigned_level: EscalationLevel
    is_breached: bool
    sla_status: Optional[SLAStatusResponse] = Field(None, description="Null when the ticket timestamp is unusable")


class DashboardSummary(BaseModel):
    """Summary statistics for dashboard."""
    total_tickets: int
    on_track_count: int
    warning_count: int
    critical_count: int
    breached_count: int
    breach_rate: float = Field(..., description="Percentage of tickets breached")


class DashboardResponse(BaseModel):
    """Response model for dashboard."""
    tickets: List[DashboardItem]
    summary: DashboardSummary


# ========== Rule Catalogue DTOs ==========

class RuleResponse(BaseModel):
    ticket_type: str
    issue_type: str
    category: str
    sub_category: str
    issue: str
    priority: str
    status: str
    client_escalation: bool
    tenant_escalation: bool
    levels: Dict[str, Dict[str, Any]]


class RuleStatsResponse(BaseModel):
    """Counts over the loaded rule table."""
    total_rules: int
    active_rules: int
    ticket_types: int
    issue_types: int
    categories: int
    sub_categories: int
    issues: int
    priorities: List[str]
    by_priority: Dict[str, int]
    client_escalation_rules: int
    tenant_escalation_rules: int
