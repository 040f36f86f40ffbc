"""Shared pytest fixtures for the escalation engine tests."""
from datetime import datetime, timedelta, timezone

import pytest

from helpdesk_sla.config import EscalationLevel, Priority, TicketStatus
from helpdesk_sla.escalation.domain import EscalationRule, LevelTarget, Ticket
from helpdesk_sla.escalation.infrastructure import EscalationRuleRepository, InMemoryTicketStore
from helpdesk_sla.shared.infrastructure.clock import ManualClock

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_rule(**overrides):
    """Technical / P1 rule with a 60 minute L0 resolution target."""
    fields = dict(
        ticket_type="Complaint",
        issue_type="Maintenance",
        category="Technical",
        sub_category="HVAC",
        issue="AC not cooling",
        priority=Priority.P1,
        levels={
            EscalationLevel.L0: LevelTarget(15, 60, "HVAC Technician"),
            EscalationLevel.L1: LevelTarget(30, 120, "Facility Supervisor"),
            EscalationLevel.L2: LevelTarget(60, 240, "Facility Manager"),
            EscalationLevel.L3: LevelTarget(120, 480, "Cluster Head"),
            EscalationLevel.L4: LevelTarget(240, 960, "Regional Head"),
            EscalationLevel.L5: LevelTarget(480, 1440, "Operations Director"),
        },
    )
    fields.update(overrides)
    return EscalationRule(**fields)


def make_ticket(minutes_ago=0, **overrides):
    """Open L0 ticket created `minutes_ago` before NOW."""
    fields = dict(
        id="HD-1",
        category="Technical",
        subcategory="HVAC",
        description="AC not cooling",
        priority=Priority.P1,
        created_at=NOW - timedelta(minutes=minutes_ago),
        status=TicketStatus.OPEN,
        assigned_level=EscalationLevel.L0,
        ticket_type="Complaint",
        issue_type="Maintenance",
    )
    fields.update(overrides)
    return Ticket(**fields)


@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return ManualClock(NOW)


@pytest.fixture
def technical_rule():
    return make_rule()


@pytest.fixture
def rule_repository(technical_rule):
    return EscalationRuleRepository([technical_rule])


@pytest.fixture
def ticket_store():
    return InMemoryTicketStore()


@pytest.fixture
def rule_file(tmp_path):
    """YAML rule file with one nested and one flat record."""
    path = tmp_path / "escalation_rules.yaml"
    path.write_text(
        "rules:\n"
        "  - ticket_type: Complaint\n"
        "    issue_type: Maintenance\n"
        "    category: Technical\n"
        "    sub_category: HVAC\n"
        "    issue: AC not cooling\n"
        "    priority: P1\n"
        "    levels:\n"
        "      L0: {response_time: 15, resolution_time: 60, assignee: HVAC Technician}\n"
        "  - ticket_type: Request\n"
        "    issue_type: Service\n"
        "    category: Soft Services\n"
        "    sub_category: Pantry\n"
        "    issue: Refill supplies\n"
        "    priority: P4\n"
        "    l0_resolution_time: 2880\n",
        encoding="utf-8",
    )
    return path
