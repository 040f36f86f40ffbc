"""
Escalation Domain Layer
=======================

Contains:
- Entities: EscalationRule, LevelTarget, Ticket
- Value Objects: SLAConfig, SLAStatus, EscalationDecision, EscalationTimeline
- Domain Services: SLACalculator, RuleMatcher, EscalationStateMachine

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk_sla.escalation.domain.entities import EscalationRule, LevelTarget, Ticket
from helpdesk_sla.escalation.domain.matcher import RuleMatcher
from helpdesk_sla.escalation.domain.state_machine import EscalationStateMachine
from helpdesk_sla.escalation.domain.value_objects import (
    DEFAULT_SLA_HOURS,
    EscalationDecision,
    EscalationTimeline,
    SLACalculator,
    SLAConfig,
    SLAStatus,
    elapsed_minutes,
    format_minutes,
)

__all__ = [
    # Entities
    "EscalationRule",
    "LevelTarget",
    "Ticket",
    # Value Objects & Services
    "DEFAULT_SLA_HOURS",
    "EscalationDecision",
    "EscalationTimeline",
    "SLACalculator",
    "SLAConfig",
    "SLAStatus",
    "RuleMatcher",
    "EscalationStateMachine",
    "elapsed_minutes",
    "format_minutes",
]
