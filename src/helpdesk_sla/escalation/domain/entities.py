"""
Escalation Domain Entities
===========================

Pure Python domain entities for the helpdesk escalation engine.

Both entities are frozen: the engine never edits a ticket in place, it
returns a new one for the ticket store to apply.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional

from helpdesk_sla.config import (
    EscalationLevel, Priority, RuleStatus, TicketStatus,
    ESCALATION_LEVELS, TERMINAL_STATUSES
)


@dataclass(frozen=True)
class LevelTarget:
    """Response/resolution targets (minutes) and assignee for one escalation level."""

    response_time: int = 0
    resolution_time: int = 0
    assignee: str = ""


@dataclass(frozen=True)
class EscalationRule:
    """
    SLA policy for a class of tickets.

    Identified by (ticket_type, issue_type, category, sub_category, issue,
    priority) and carrying a LevelTarget for each of L0..L5.
    """

    ticket_type: str
    issue_type: str
    category: str
    sub_category: str
    issue: str
    priority: Priority
    levels: Dict[EscalationLevel, LevelTarget] = field(default_factory=dict)
    status: RuleStatus = RuleStatus.ACTIVE
    client_escalation: bool = False
    tenant_escalation: bool = False

    def target_for(self, level: EscalationLevel) -> LevelTarget:
        return self.levels.get(level, LevelTarget())

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE

    @property
    def is_usable(self) -> bool:
        """A rule needs at least one level with a positive resolution time."""
        return any(self.target_for(level).resolution_time > 0 for level in ESCALATION_LEVELS)

    def to_dict(self) -> dict:
        return {
            "ticket_type": self.ticket_type,
            "issue_type": self.issue_type,
            "category": self.category,
            "sub_category": self.sub_category,
            "issue": self.issue,
            "priority": self.priority.value,
            "status": self.status.value,
            "client_escalation": self.client_escalation,
            "tenant_escalation": self.tenant_escalation,
            "levels": {
                level.value: {
                    "response_time": self.target_for(level).response_time,
                    "resolution_time": self.target_for(level).resolution_time,
                    "assignee": self.target_for(level).assignee,
                }
                for level in ESCALATION_LEVELS
            },
        }


@dataclass(frozen=True)
class Ticket:
    """
    Helpdesk ticket as seen by the escalation engine.

    `description` doubles as the "issue" key when matching rules.
    `created_at` is typed loosely on purpose: tickets come from an external
    store and the batch evaluator has to survive a bad timestamp.
    """

    id: str
    category: str
    subcategory: str
    description: str
    priority: Priority
    created_at: Optional[datetime]
    status: TicketStatus = TicketStatus.OPEN
    assigned_level: EscalationLevel = EscalationLevel.L0
    ticket_type: Optional[str] = None
    issue_type: Optional[str] = None
    last_escalated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        """Resolved and Closed tickets are exempt from breach and auto-escalation."""
        return self.status in TERMINAL_STATUSES

    def with_changes(self, **changes) -> "Ticket":
        return replace(self, **changes)
