"""Tests for normalizing raw rule records."""
import pytest

from helpdesk_sla.config import EscalationLevel, Priority, RuleStatus
from helpdesk_sla.core import ValidationException
from helpdesk_sla.escalation.infrastructure import normalize_rule_record
from helpdesk_sla.escalation.infrastructure.mappers import DEFAULT_LEVEL_TARGETS


class TestRecordShapes:
    def test_nested_levels(self):
        rule = normalize_rule_record({
            "ticket_type": "Complaint",
            "issue_type": "Maintenance",
            "category": "Technical",
            "sub_category": "HVAC",
            "issue": "AC not cooling",
            "priority": "P1",
            "levels": {"L0": {"response_time": 15, "resolution_time": 60, "assignee": "HVAC Technician"}},
        })

        assert rule.category == "Technical"
        assert rule.sub_category == "HVAC"
        assert rule.priority == Priority.P1
        assert rule.target_for(EscalationLevel.L0).resolution_time == 60
        assert rule.target_for(EscalationLevel.L0).assignee == "HVAC Technician"

    def test_flat_snake_case(self):
        rule = normalize_rule_record({"category": "Technical", "priority": "P2", "l1_resolution_time": "500"})
        assert rule.target_for(EscalationLevel.L1).resolution_time == 500

    def test_camel_case(self):
        rule = normalize_rule_record({
            "ticketType": "Request",
            "subCategory": "Pantry",
            "priority": "P4",
            "l2ResponseTime": 90,
            "clientEscalation": True,
        })

        assert rule.ticket_type == "Request"
        assert rule.sub_category == "Pantry"
        assert rule.target_for(EscalationLevel.L2).response_time == 90
        assert rule.client_escalation is True

    def test_spreadsheet_headers_with_historical_misspelling(self):
        rule = normalize_rule_record({
            "Ticket Type": "Complaint",
            "Issue Type": "Maintenance",
            "Category": "Technical",
            "Sub Category": "Electrical",
            "Issue": "Power outage",
            "Priority": "P2 - High",
            "L0 Response Time": "30",
            "L0 ResoultionTime": "240",
            "L0 Assignee": "Electrician",
            "Status": "active",
            "Client Escalation": "TRUE",
            "Tenant Escalation": "FALSE",
        })

        assert rule.issue == "Power outage"
        assert rule.priority == Priority.P2
        assert rule.target_for(EscalationLevel.L0).resolution_time == 240
        assert rule.target_for(EscalationLevel.L0).assignee == "Electrician"
        assert rule.status == RuleStatus.ACTIVE
        assert rule.client_escalation is True
        assert rule.tenant_escalation is False


class TestDefaults:
    def test_blank_fields_take_defaults(self):
        rule = normalize_rule_record({"category": "Technical", "l0_resolution_time": ""})

        assert rule.ticket_type == "Standard"
        assert rule.priority == Priority.P3
        assert rule.status == RuleStatus.ACTIVE
        for level, target in DEFAULT_LEVEL_TARGETS.items():
            assert rule.target_for(level) == target

    def test_explicit_zero_is_kept(self):
        rule = normalize_rule_record({"category": "Technical", "l5_resolution_time": 0})
        assert rule.target_for(EscalationLevel.L5).resolution_time == 0


class TestInvalidRecords:
    @pytest.mark.parametrize("record", [
        {"category": "Technical", "priority": "urgent"},
        {"category": "Technical", "status": "maybe"},
        {"category": "Technical", "l0_response_time": "soon"},
        {"category": "Technical", "l0_resolution_time": "inf"},
        {"category": "Technical", "l1_response_time": "-Infinity"},
        {"category": "Technical", "l2_resolution_time": "nan"},
        {"category": "Technical", "levels": ["L0"]},
        ["not", "a", "mapping"],
    ])
    def test_rejected(self, record):
        with pytest.raises(ValidationException):
            normalize_rule_record(record)
