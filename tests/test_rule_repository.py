"""Tests for the rule repository, catalogue lookups and rule sources."""
import httpx
import pytest

from helpdesk_sla.config import EscalationLevel, Priority
from helpdesk_sla.core import ConfigurationException, ExternalServiceException
from helpdesk_sla.escalation.infrastructure import (
    EscalationRuleRepository,
    HTTPRuleSource,
    RuleFileManager,
    YAMLRuleSource,
    build_rules,
)

RECORDS = [
    {"ticket_type": "Complaint", "issue_type": "Maintenance", "category": "Technical",
     "sub_category": "HVAC", "issue": "AC not cooling", "priority": "P1", "client_escalation": True},
    {"ticket_type": "Complaint", "issue_type": "Maintenance", "category": "Technical",
     "sub_category": "Electrical", "issue": "Power outage", "priority": "P2"},
    {"ticket_type": "Complaint", "issue_type": "Housekeeping", "category": "Soft Services",
     "sub_category": "Cleaning", "issue": "Washroom not clean", "priority": "P3"},
    {"ticket_type": "Request", "issue_type": "Service", "category": "Soft Services",
     "sub_category": "Pantry", "issue": "Refill supplies", "priority": "P4", "tenant_escalation": True},
]


@pytest.fixture
def repository():
    return EscalationRuleRepository.from_records(RECORDS)


class TestBuildRules:
    def test_invalid_and_unusable_records_are_dropped(self):
        zero_levels = {f"l{i}_resolution_time": 0 for i in range(6)}
        rules = build_rules([
            RECORDS[0],
            {"category": "Technical", "priority": "urgent"},
            {"category": "Technical", **zero_levels},
        ])

        assert len(rules) == 1
        assert rules[0].issue == "AC not cooling"

    def test_infinite_minutes_drop_only_that_record(self):
        rules = build_rules([{**RECORDS[1], "l0_resolution_time": "inf"}, RECORDS[0]])

        assert [rule.issue for rule in rules] == ["AC not cooling"]

    def test_reload_with_infinite_minutes_keeps_the_rest(self, rule_file):
        repository = EscalationRuleRepository()
        manager = RuleFileManager(repository, rule_file)
        manager.load()

        rule_file.write_text(
            "- {category: Technical, priority: P1, l0_resolution_time: inf}\n"
            "- {category: Technical, priority: P2}\n",
            encoding="utf-8",
        )

        assert manager.reload() is True
        assert [rule.priority for rule in repository.get_rules()] == [Priority.P2]


class TestCatalogue:
    def test_ticket_types(self, repository):
        assert repository.ticket_types() == ["Complaint", "Request"]

    def test_issue_types_filtered_by_ticket_type(self, repository):
        assert repository.issue_types() == ["Housekeeping", "Maintenance", "Service"]
        assert repository.issue_types("Complaint") == ["Housekeeping", "Maintenance"]

    def test_categories(self, repository):
        assert repository.categories("Complaint", "Maintenance") == ["Technical"]

    def test_sub_categories(self, repository):
        assert repository.sub_categories(category="Technical") == ["Electrical", "HVAC"]

    def test_issues(self, repository):
        assert repository.issues(category="Soft Services", sub_category="Pantry") == ["Refill supplies"]

    def test_priorities(self, repository):
        assert repository.priorities() == ["P1", "P2", "P3", "P4"]
        assert repository.priorities(category="Technical", sub_category="HVAC") == ["P1"]

    def test_find_exact(self, repository):
        rule = repository.find_exact("Complaint", "Maintenance", "Technical", "HVAC", "AC not cooling", Priority.P1)
        assert rule is not None
        assert repository.find_exact("Complaint", "Maintenance", "Technical", "HVAC", "AC not cooling", Priority.P2) is None

    def test_rules_by_ticket_type_and_priority(self, repository):
        assert len(repository.rules_by_ticket_type("Complaint")) == 3
        assert [r.issue for r in repository.rules_by_priority(Priority.P4)] == ["Refill supplies"]

    def test_search_is_case_insensitive(self, repository):
        assert [r.issue for r in repository.search("PANTRY")] == ["Refill supplies"]
        assert len(repository.search("soft")) == 2
        assert repository.search("zzz") == []

    def test_stats(self, repository):
        stats = repository.stats()

        assert stats["total_rules"] == 4
        assert stats["active_rules"] == 4
        assert stats["ticket_types"] == 2
        assert stats["categories"] == 2
        assert stats["priorities"] == ["P1", "P2", "P3", "P4"]
        assert stats["by_priority"]["P1"] == 1
        assert stats["client_escalation_rules"] == 1
        assert stats["tenant_escalation_rules"] == 1


class TestSnapshot:
    def test_replace_swaps_the_whole_table(self, repository):
        before = repository.get_rules()
        repository.replace_records(RECORDS[:1])

        assert len(before) == 4
        assert len(repository.get_rules()) == 1


class TestYAMLRuleSource:
    def test_loads_nested_and_flat_records(self, rule_file):
        repository = EscalationRuleRepository()
        RuleFileManager(repository, rule_file).load()

        rules = repository.get_rules()
        assert len(rules) == 2
        assert rules[0].target_for(EscalationLevel.L0).resolution_time == 60
        assert rules[1].target_for(EscalationLevel.L0).resolution_time == 2880

    def test_bare_list_document(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text('[{"category": "Technical", "priority": "P1"}]', encoding="utf-8")

        assert len(YAMLRuleSource(path).load()) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationException):
            YAMLRuleSource(tmp_path / "nope.yaml").load()

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("rules: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationException):
            YAMLRuleSource(path).load()

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("rules: just a string", encoding="utf-8")

        with pytest.raises(ConfigurationException):
            YAMLRuleSource(path).load()


class TestReload:
    def test_reload_picks_up_changes(self, rule_file):
        repository = EscalationRuleRepository()
        manager = RuleFileManager(repository, rule_file)
        manager.load()

        rule_file.write_text("- {category: Technical, priority: P1}\n", encoding="utf-8")

        assert manager.reload() is True
        assert len(repository.get_rules()) == 1

    def test_failed_reload_keeps_previous_rules(self, rule_file):
        repository = EscalationRuleRepository()
        manager = RuleFileManager(repository, rule_file)
        manager.load()

        rule_file.write_text("rules: [unclosed", encoding="utf-8")

        assert manager.reload() is False
        assert len(repository.get_rules()) == 2


class TestHTTPRuleSource:
    async def test_fetches_rules_key(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"rules": RECORDS}))
        records = await HTTPRuleSource("http://rules.test/api", transport=transport).load()

        assert len(build_rules(records)) == 4

    async def test_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))

        with pytest.raises(ExternalServiceException):
            await HTTPRuleSource("http://rules.test/api", transport=transport).load()
