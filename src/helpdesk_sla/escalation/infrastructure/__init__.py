"""
Escalation Infrastructure Layer
===============================

Rule normalization, rule and ticket stores, and external adapters.
"""

from helpdesk_sla.escalation.infrastructure.external import (
    CircuitBreaker,
    EscalationScheduler,
    HTTPRuleSource,
    RuleFileManager,
    SlackEscalationNotifier,
)
from helpdesk_sla.escalation.infrastructure.mappers import normalize_rule_record
from helpdesk_sla.escalation.infrastructure.repositories import (
    EscalationRuleRepository,
    InMemoryTicketStore,
    YAMLRuleSource,
    build_rules,
)

__all__ = [
    "CircuitBreaker",
    "EscalationScheduler",
    "HTTPRuleSource",
    "RuleFileManager",
    "SlackEscalationNotifier",
    "normalize_rule_record",
    "EscalationRuleRepository",
    "InMemoryTicketStore",
    "YAMLRuleSource",
    "build_rules",
]
