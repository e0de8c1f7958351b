import pytest

from helpdesk.automation.infrastructure import DEFAULT_RULES, RuleSetManager, parse_rules
from helpdesk.config import Category, Priority, TicketStatus
from helpdesk.core import ConfigurationException

RULES_YAML = """
prioritization_rules:
  - name: VIP
    keyword: ceo
    priority: Critical
assignment_rules:
  - name: Billing
    category: BillingQuestion
    role: Finance
escalation_rules:
  - name: Stuck approval
    priority: High
    status: InApproval
    hours: 4
    escalate_to_role: Manager
    new_priority: Critical
"""


def test_load_rules_from_yaml(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(RULES_YAML)

    rules = RuleSetManager().load(path)

    assert rules.prioritization[0].keyword == "ceo"
    assert rules.prioritization[0].priority == Priority.CRITICAL
    assert rules.assignment[0].category == Category.BILLING_QUESTION
    assert rules.assignment[0].method == "round_robin"
    escalation = rules.escalation[0]
    assert escalation.status == TicketStatus.IN_APPROVAL
    assert escalation.hours == 4
    assert escalation.new_priority == Priority.CRITICAL


def test_missing_file_uses_defaults(tmp_path):
    manager = RuleSetManager()

    assert manager.load(tmp_path / "absent.yaml") == DEFAULT_RULES
    assert manager.get_rules() == DEFAULT_RULES


def test_invalid_reload_keeps_previous_rules(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(RULES_YAML)
    manager = RuleSetManager()
    loaded = manager.load(path)

    path.write_text("prioritization_rules:\n  - name: Broken\n    priority: Whenever\n")

    assert manager.reload() is False
    assert manager.get_rules() == loaded


def test_reload_picks_up_changes(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(RULES_YAML)
    manager = RuleSetManager()
    manager.load(path)

    path.write_text("prioritization_rules:\n  - name: Printers\n    keyword: printer\n    priority: Low\n")

    assert manager.reload() is True
    rules = manager.get_rules()
    assert [r.name for r in rules.prioritization] == ["Printers"]
    assert rules.assignment == ()


def test_reload_without_load_is_refused():
    assert RuleSetManager().reload() is False


def test_duplicate_rule_names_are_rejected():
    data = {
        "prioritization_rules": [
            {"name": "Dup", "keyword": "a", "priority": "High"},
            {"name": "Dup", "keyword": "b", "priority": "Low"},
        ]
    }

    with pytest.raises(ConfigurationException):
        parse_rules(data)


def test_non_mapping_document_is_rejected(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationException):
        RuleSetManager().load(path)
