"""Tests for tiered rule matching."""
from helpdesk_sla.config import Priority, RuleStatus
from helpdesk_sla.escalation.domain import RuleMatcher

from conftest import make_rule, make_ticket


class TestExactTier:
    """All six keys line up."""

    def test_exact_match_wins_over_earlier_category_match(self):
        category_only = make_rule(issue="Something else", sub_category="Plumbing")
        exact = make_rule()
        ticket = make_ticket()

        rule, tier = RuleMatcher.find_rule_with_tier([category_only, exact], ticket)

        assert rule is exact
        assert tier == "exact"

    def test_exact_tier_needs_ticket_and_issue_type(self):
        rule = make_rule()
        ticket = make_ticket(ticket_type=None, issue_type=None)

        # Still found, but through the category + priority tier
        assert RuleMatcher.find_rule_with_tier([rule], ticket) == (rule, "category_priority")


class TestFallbackTiers:
    def test_category_and_priority_match_when_issue_differs(self):
        rule = make_rule(issue="Thermostat broken")
        ticket = make_ticket(description="AC making noise")

        assert RuleMatcher.find_rule([rule], ticket) is rule

    def test_type_and_priority_match_when_category_differs(self):
        rule = make_rule(category="Soft Services")
        ticket = make_ticket(category="Technical")

        assert RuleMatcher.find_rule_with_tier([rule], ticket) == (rule, "type_priority")

    def test_type_tier_skipped_without_ticket_type(self):
        rule = make_rule(category="Soft Services")
        ticket = make_ticket(ticket_type=None)

        assert RuleMatcher.find_rule([rule], ticket) is None

    def test_priority_must_match_in_every_tier(self):
        rule = make_rule(priority=Priority.P2)

        assert RuleMatcher.find_rule([rule], make_ticket()) is None

    def test_first_rule_in_order_wins_within_a_tier(self):
        first = make_rule(issue="One")
        second = make_rule(issue="Two")

        assert RuleMatcher.find_rule([first, second], make_ticket(description="Three")) is first


class TestRuleStatus:
    def test_inactive_rules_are_ignored(self):
        inactive = make_rule(status=RuleStatus.INACTIVE)
        assert RuleMatcher.find_rule([inactive], make_ticket()) is None

    def test_no_rules_returns_none(self):
        assert RuleMatcher.find_rule([], make_ticket()) is None
