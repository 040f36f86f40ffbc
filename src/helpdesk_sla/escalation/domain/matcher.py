"""
Rule Matcher
============

Picks the escalation rule that governs a ticket.

Matching falls back through three tiers so that tickets with partial data
(no ticket type, free-text description) still land on a usable rule:

1. exact: ticket type, issue type, category, sub-category, issue, priority
2. category + priority
3. ticket type + priority

Only ACTIVE rules take part. Within a tier the first rule in repository
order wins.
"""

from typing import Callable, Iterable, Optional

from helpdesk_sla.escalation.domain.entities import EscalationRule, Ticket

RulePredicate = Callable[[EscalationRule, Ticket], bool]


def _exact(rule: EscalationRule, ticket: Ticket) -> bool:
    return (
        ticket.ticket_type is not None
        and ticket.issue_type is not None
        and rule.ticket_type == ticket.ticket_type
        and rule.issue_type == ticket.issue_type
        and rule.category == ticket.category
        and rule.sub_category == ticket.subcategory
        and rule.issue == ticket.description
        and rule.priority == ticket.priority
    )


def _category_and_priority(rule: EscalationRule, ticket: Ticket) -> bool:
    return rule.category == ticket.category and rule.priority == ticket.priority


def _type_and_priority(rule: EscalationRule, ticket: Ticket) -> bool:
    return (
        ticket.ticket_type is not None
        and rule.ticket_type == ticket.ticket_type
        and rule.priority == ticket.priority
    )


MATCH_TIERS = (
    ("exact", _exact),
    ("category_priority", _category_and_priority),
    ("type_priority", _type_and_priority),
)


class RuleMatcher:
    """Stateless tiered matcher over a sequence of rules."""

    @staticmethod
    def find_rule(rules: Iterable[EscalationRule], ticket: Ticket) -> Optional[EscalationRule]:
        """
        Return the best rule for `ticket`, or None when no tier matches.

        None is an answer, not an error: callers fall back to the
        priority-based default SLA.
        """
        match = RuleMatcher.find_rule_with_tier(rules, ticket)
        return match[0] if match else None

    @staticmethod
    def find_rule_with_tier(rules: Iterable[EscalationRule], ticket: Ticket):
        """Like find_rule, but returns (rule, tier_name) or None."""
        active = [rule for rule in rules if rule.is_active]
        for tier_name, predicate in MATCH_TIERS:
            for rule in active:
                if predicate(rule, ticket):
                    return rule, tier_name
        return None
