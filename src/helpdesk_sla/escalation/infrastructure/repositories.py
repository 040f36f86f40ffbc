"""
Escalation Infrastructure Repositories
=======================================

Concrete implementations of the escalation ports:

- EscalationRuleRepository: immutable, swappable snapshot of the rule table
  plus the catalogue lookups used by ticket forms
- InMemoryTicketStore: dictionary-backed ticket store
- YAMLRuleSource: reads raw rule records from a YAML or JSON file
"""

import threading
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

from helpdesk_sla.config import Priority, TicketStatus
from helpdesk_sla.core import ConfigurationException, ValidationException
from helpdesk_sla.escalation.application import IRuleProvider, ITicketStore
from helpdesk_sla.escalation.domain import EscalationRule, Ticket
from helpdesk_sla.escalation.infrastructure.mappers import normalize_rule_record
from helpdesk_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def build_rules(records: Iterable[Mapping[str, Any]]) -> List[EscalationRule]:
    """
    Normalize raw records, dropping the ones that cannot be used.

    A record is dropped with a warning when it fails validation or when no
    level has a positive resolution time.
    """
    rules = []
    for position, record in enumerate(records):
        try:
            rule = normalize_rule_record(record)
        except ValidationException as e:
            logger.warning(
                "Dropping invalid escalation rule",
                extra={"position": position, "error": e.message, "details": e.details}
            )
            continue

        if not rule.is_usable:
            logger.warning(
                "Dropping escalation rule without a positive resolution time",
                extra={"position": position, "category": rule.category, "priority": rule.priority.value}
            )
            continue

        rules.append(rule)
    return rules


def _distinct(values: Iterable[str]) -> List[str]:
    return sorted(set(values))


class EscalationRuleRepository(IRuleProvider):
    """
    Read-mostly store of escalation rules.

    Readers always see a complete snapshot: `replace` swaps the whole tuple
    under a lock, so a reload never exposes a half-built table.
    """

    def __init__(self, rules: Optional[Sequence[EscalationRule]] = None):
        self._lock = threading.Lock()
        self._rules: Tuple[EscalationRule, ...] = tuple(rules or ())

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "EscalationRuleRepository":
        return cls(build_rules(records))

    def get_rules(self) -> Sequence[EscalationRule]:
        return self._rules

    def replace(self, rules: Sequence[EscalationRule]) -> None:
        with self._lock:
            self._rules = tuple(rules)
        logger.info("Escalation rules replaced", extra={"rule_count": len(self._rules)})

    def replace_records(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Normalize `records` and swap them in; returns the number kept."""
        rules = build_rules(records)
        self.replace(rules)
        return len(rules)

    def __len__(self) -> int:
        return len(self._rules)

    # ========== Catalogue lookups ==========

    def _filtered(
        self,
        ticket_type: Optional[str] = None,
        issue_type: Optional[str] = None,
        category: Optional[str] = None,
        sub_category: Optional[str] = None,
        issue: Optional[str] = None
    ) -> List[EscalationRule]:
        criteria = (
            ("ticket_type", ticket_type),
            ("issue_type", issue_type),
            ("category", category),
            ("sub_category", sub_category),
            ("issue", issue),
        )
        rules = list(self._rules)
        for attribute, expected in criteria:
            if expected:
                rules = [rule for rule in rules if getattr(rule, attribute) == expected]
        return rules

    def ticket_types(self) -> List[str]:
        return _distinct(rule.ticket_type for rule in self._rules)

    def issue_types(self, ticket_type: Optional[str] = None) -> List[str]:
        return _distinct(rule.issue_type for rule in self._filtered(ticket_type))

    def categories(self, ticket_type: Optional[str] = None, issue_type: Optional[str] = None) -> List[str]:
        return _distinct(rule.category for rule in self._filtered(ticket_type, issue_type))

    def sub_categories(
        self,
        ticket_type: Optional[str] = None,
        issue_type: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[str]:
        return _distinct(rule.sub_category for rule in self._filtered(ticket_type, issue_type, category))

    def issues(
        self,
        ticket_type: Optional[str] = None,
        issue_type: Optional[str] = None,
        category: Optional[str] = None,
        sub_category: Optional[str] = None
    ) -> List[str]:
        return _distinct(
            rule.issue for rule in self._filtered(ticket_type, issue_type, category, sub_category)
        )

    def priorities(
        self,
        ticket_type: Optional[str] = None,
        issue_type: Optional[str] = None,
        category: Optional[str] = None,
        sub_category: Optional[str] = None,
        issue: Optional[str] = None
    ) -> List[str]:
        rules = self._filtered(ticket_type, issue_type, category, sub_category, issue)
        return _distinct(rule.priority.value for rule in rules)

    def find_exact(
        self,
        ticket_type: str,
        issue_type: str,
        category: str,
        sub_category: str,
        issue: str,
        priority: Priority
    ) -> Optional[EscalationRule]:
        """First rule matching all six keys, active or not."""
        for rule in self._filtered(ticket_type, issue_type, category, sub_category, issue):
            if rule.priority == priority:
                return rule
        return None

    def rules_by_ticket_type(self, ticket_type: str) -> List[EscalationRule]:
        return [rule for rule in self._rules if rule.ticket_type == ticket_type]

    def rules_by_priority(self, priority: Priority) -> List[EscalationRule]:
        return [rule for rule in self._rules if rule.priority == priority]

    def search(self, query: str) -> List[EscalationRule]:
        """Case-insensitive substring search over the six key fields."""
        needle = query.lower()
        return [
            rule for rule in self._rules
            if any(
                needle in value.lower()
                for value in (
                    rule.ticket_type, rule.issue_type, rule.category,
                    rule.sub_category, rule.issue, rule.priority.value
                )
            )
        ]

    def stats(self) -> Dict[str, Any]:
        rules = self._rules
        by_priority = Counter(rule.priority.value for rule in rules)
        return {
            "total_rules": len(rules),
            "active_rules": sum(1 for rule in rules if rule.is_active),
            "ticket_types": len({rule.ticket_type for rule in rules}),
            "issue_types": len({rule.issue_type for rule in rules}),
            "categories": len({rule.category for rule in rules}),
            "sub_categories": len({rule.sub_category for rule in rules}),
            "issues": len({rule.issue for rule in rules}),
            "priorities": sorted(by_priority),
            "by_priority": dict(sorted(by_priority.items())),
            "client_escalation_rules": sum(1 for rule in rules if rule.client_escalation),
            "tenant_escalation_rules": sum(1 for rule in rules if rule.tenant_escalation),
        }


class InMemoryTicketStore(ITicketStore):
    """Ticket store kept in process memory, keyed by ticket ID."""

    def __init__(self, tickets: Optional[Iterable[Ticket]] = None):
        self._tickets: Dict[str, Ticket] = {ticket.id: ticket for ticket in tickets or ()}

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    async def list(self, status: Optional[TicketStatus] = None) -> List[Ticket]:
        tickets = list(self._tickets.values())
        if status is not None:
            tickets = [ticket for ticket in tickets if ticket.status == status]
        return tickets

    async def list_active(self) -> List[Ticket]:
        return [ticket for ticket in self._tickets.values() if not ticket.is_terminal]

    async def save(self, ticket: Ticket) -> None:
        self._tickets[ticket.id] = ticket

    async def upsert_many(self, tickets: Iterable[Ticket]) -> Tuple[int, int]:
        """Store `tickets`; returns (created, updated)."""
        created = updated = 0
        for ticket in tickets:
            if ticket.id in self._tickets:
                updated += 1
            else:
                created += 1
            self._tickets[ticket.id] = ticket
        return created, updated


class YAMLRuleSource:
    """
    Reads raw rule records from a file.

    The file holds either a list of records or a mapping with a `rules` key.
    JSON files load through the same YAML parser.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[Mapping[str, Any]]:
        """
        Raises:
            ConfigurationException: If the file is missing, unparseable or
                does not contain a list of rule records
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationException(
                f"Cannot read escalation rule file: {self.path}",
                details={"path": str(self.path), "error": str(e)}
            )
        except yaml.YAMLError as e:
            raise ConfigurationException(
                f"Malformed escalation rule file: {self.path}",
                details={"path": str(self.path), "error": str(e)}
            )

        return parse_rule_payload(data, source=str(self.path))


def parse_rule_payload(data: Any, source: str) -> List[Mapping[str, Any]]:
    """Extract the record list from a loaded document or API response."""
    if data is None:
        return []
    if isinstance(data, Mapping):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise ConfigurationException(
            "Escalation rules must be a list of records",
            details={"source": source, "type": type(data).__name__}
        )
    return data
