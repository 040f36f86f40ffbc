"""Tests for the SLA query surface: breach detection, status, path and timeline."""
from datetime import timedelta

import pytest

from helpdesk_sla.config import EscalationLevel, Priority, SLAHealth, TicketStatus
from helpdesk_sla.core import InvalidTicketTimestampException
from helpdesk_sla.escalation.application import SLAService
from helpdesk_sla.escalation.domain import LevelTarget
from helpdesk_sla.escalation.infrastructure import EscalationRuleRepository

from conftest import NOW, make_rule, make_ticket


@pytest.fixture
def service(rule_repository, clock):
    return SLAService(rule_repository, clock)


@pytest.fixture
def empty_service(clock):
    return SLAService(EscalationRuleRepository(), clock)


class TestBreachDetection:
    def test_exact_match_breach_scenario(self, service):
        """Technical/P1 rule with 60 minute L0 resolution, ticket 90 minutes old."""
        ticket = make_ticket(minutes_ago=90)

        assert service.is_sla_breached(ticket) is True
        assert service.calculate_sla_status(ticket).status == SLAHealth.CRITICAL

    def test_within_window_is_not_breached(self, service):
        assert service.is_sla_breached(make_ticket(minutes_ago=59)) is False

    @pytest.mark.parametrize("status", [TicketStatus.RESOLVED, TicketStatus.CLOSED])
    def test_terminal_tickets_are_never_breached(self, service, empty_service, status):
        ticket = make_ticket(minutes_ago=60 * 24 * 30, status=status)

        assert service.is_sla_breached(ticket) is False
        assert empty_service.is_sla_breached(ticket) is False

    def test_lapsed_tickets_are_still_checked(self, service):
        assert service.is_sla_breached(make_ticket(minutes_ago=90, status=TicketStatus.LAPSED)) is True

    def test_breach_uses_time_since_creation_not_since_escalation(self, service):
        ticket = make_ticket(
            minutes_ago=150,
            assigned_level=EscalationLevel.L1,
            last_escalated_at=NOW - timedelta(minutes=10),
        )
        # L1 resolution is 120 minutes
        assert service.is_sla_breached(ticket) is True

    def test_no_rule_uses_priority_default(self, empty_service):
        assert empty_service.is_sla_breached(make_ticket(minutes_ago=5 * 60)) is True
        assert empty_service.is_sla_breached(make_ticket(minutes_ago=3 * 60)) is False

    def test_unknown_priority_uses_most_lenient_default(self, empty_service):
        assert empty_service.is_sla_breached(make_ticket(minutes_ago=47 * 60, priority="P9")) is False
        assert empty_service.is_sla_breached(make_ticket(minutes_ago=49 * 60, priority="P9")) is True

    def test_zero_resolution_target_is_compared_literally(self, clock):
        rule = make_rule(levels={EscalationLevel.L0: LevelTarget(15, 0, "Tech"), EscalationLevel.L1: LevelTarget(30, 120, "Lead")})
        service = SLAService(EscalationRuleRepository([rule]), clock)
        ticket = make_ticket(minutes_ago=1)

        assert service.is_sla_breached(ticket) is True
        # The status view falls back to the 4h P1 window instead
        assert service.calculate_sla_status(ticket).breached is False


class TestCalculateSLAStatus:
    def test_fallback_status_without_rule(self, empty_service):
        status = empty_service.calculate_sla_status(make_ticket(minutes_ago=12 * 60, priority=Priority.P3))

        assert status is not None
        assert status.resolution_time_hours == 24.0
        assert status.percentage_used == 50
        assert status.status == SLAHealth.ON_TRACK

    def test_uses_current_level_target(self, service):
        ticket = make_ticket(minutes_ago=90, assigned_level=EscalationLevel.L1)
        status = service.calculate_sla_status(ticket)

        assert status.remaining_minutes == 30
        assert status.percentage_used == 75
        assert status.status == SLAHealth.WARNING

    def test_bad_timestamp_raises(self, service):
        with pytest.raises(InvalidTicketTimestampException):
            service.calculate_sla_status(make_ticket(created_at="not a date"))

    def test_iso_string_timestamp_is_accepted(self, service):
        ticket = make_ticket(created_at=(NOW - timedelta(minutes=30)).isoformat().replace("+00:00", "Z"))
        assert service.calculate_sla_status(ticket).percentage_used == 50


class TestAutoEscalationCheck:
    def test_past_response_target(self, service):
        assert service.should_auto_escalate(make_ticket(minutes_ago=20)) is True

    def test_within_response_target(self, service):
        assert service.should_auto_escalate(make_ticket(minutes_ago=10)) is False

    def test_requires_a_matching_rule(self, empty_service):
        assert empty_service.should_auto_escalate(make_ticket(minutes_ago=60 * 24)) is False


class TestBadTimestamps:
    def test_breach_check_raises(self, service, empty_service):
        for svc in (service, empty_service):
            with pytest.raises(InvalidTicketTimestampException):
                svc.is_sla_breached(make_ticket(created_at=None))

    def test_terminal_ticket_short_circuits(self, service):
        assert service.is_sla_breached(make_ticket(created_at="garbage", status=TicketStatus.CLOSED)) is False

    def test_auto_escalate_check_raises_when_a_rule_matches(self, service, empty_service):
        with pytest.raises(InvalidTicketTimestampException):
            service.should_auto_escalate(make_ticket(created_at="garbage"))
        assert empty_service.should_auto_escalate(make_ticket(created_at="garbage")) is False


class TestEscalationPath:
    def test_full_path(self, service):
        path = service.get_escalation_path(make_ticket())

        assert [sla.level for sla in path] == ["L0", "L1", "L2", "L3", "L4", "L5"]
        assert path[0].assignee == "HVAC Technician"

    def test_levels_without_resolution_target_are_skipped(self, clock):
        rule = make_rule(levels={
            EscalationLevel.L0: LevelTarget(15, 60, "Tech"),
            EscalationLevel.L2: LevelTarget(60, 240, "Manager"),
        })
        service = SLAService(EscalationRuleRepository([rule]), clock)

        assert [sla.level for sla in service.get_escalation_path(make_ticket())] == ["L0", "L2"]

    def test_no_rule_means_empty_path(self, empty_service):
        assert empty_service.get_escalation_path(make_ticket()) == []

    @pytest.mark.parametrize("level,expected", [
        ("L0", "L1"),
        (EscalationLevel.L3, "L4"),
        ("L4", "L5"),
        ("L5", "L5"),
        ("bogus", "L5"),
    ])
    def test_next_level(self, service, level, expected):
        assert service.get_next_escalation_level(level) == expected


class TestTimeline:
    def test_minutes_at_current_level_uses_last_escalation(self, service):
        ticket = make_ticket(
            minutes_ago=300,
            assigned_level=EscalationLevel.L1,
            last_escalated_at=NOW - timedelta(minutes=45),
        )
        timeline = service.build_timeline(ticket)

        assert timeline.current_level == "L1"
        assert timeline.next_level == "L2"
        assert timeline.total_elapsed_minutes == 300
        assert timeline.minutes_at_current_level == 45
        assert len(timeline.path) == 6

    def test_never_escalated_counts_from_creation(self, service):
        assert service.minutes_at_current_level(make_ticket(minutes_ago=20)) == 20
