"""
Escalation Rule Mapper
======================

Normalizes raw rule records into EscalationRule entities.

Rule tables arrive in several shapes: the nested YAML layout used by the
rule file, flat snake_case or camelCase JSON from the rule endpoint, and
spreadsheet exports whose headers carry spaces (and a historical
'ResoultionTime' misspelling). Keys are folded to lowercase alphanumerics
so all of them resolve through one lookup table.
"""

import re
from typing import Any, Dict, Mapping, Optional

from helpdesk_sla.config import EscalationLevel, Priority, RuleStatus, ESCALATION_LEVELS
from helpdesk_sla.core import ValidationException
from helpdesk_sla.escalation.domain import EscalationRule, LevelTarget

# Standard escalation matrix, used when a record leaves a level value blank
DEFAULT_LEVEL_TARGETS = {
    EscalationLevel.L0: LevelTarget(30, 1440, "L0 Technician"),
    EscalationLevel.L1: LevelTarget(120, 2880, "L1 Manager"),
    EscalationLevel.L2: LevelTarget(240, 4320, "L2 Manager"),
    EscalationLevel.L3: LevelTarget(720, 5160, "L3 Manager"),
    EscalationLevel.L4: LevelTarget(1800, 6600, "L4 Manager"),
    EscalationLevel.L5: LevelTarget(2160, 8040, "L5 Manager"),
}

DEFAULT_TICKET_TYPE = "Standard"
DEFAULT_PRIORITY = Priority.P3

_RESOLUTION_KEYS = ("resolutiontime", "resoultiontime")
_TRUE_STRINGS = {"true", "yes", "y", "1"}


def _fold(key: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _lookup(record: Mapping[str, Any], *names: str) -> Optional[Any]:
    for name in names:
        value = record.get(name)
        if not _blank(value):
            return value
    return None


def _text(record: Mapping[str, Any], name: str, default: str = "") -> str:
    value = _lookup(record, name)
    return default if value is None else str(value).strip()


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def _minutes(value: Any, default: int, field_name: str) -> int:
    if _blank(value):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        # "nan" raises ValueError, "inf" raises OverflowError
        raise ValidationException(
            f"Invalid minutes value for {field_name}: {value!r}",
            details={"field": field_name, "value": str(value)}
        )


def _fold_record(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Fold keys, flattening a nested `levels` mapping into l0responsetime etc."""
    folded = {_fold(key): value for key, value in raw.items() if key != "levels"}

    nested = raw.get("levels") or {}
    if not isinstance(nested, Mapping):
        raise ValidationException("Rule 'levels' must be a mapping", details={"levels": str(nested)})

    for level_key, targets in nested.items():
        if not isinstance(targets, Mapping):
            continue
        prefix = _fold(level_key)
        for key, value in targets.items():
            folded.setdefault(prefix + _fold(key), value)

    return folded


def _level_target(record: Mapping[str, Any], level: EscalationLevel) -> LevelTarget:
    default = DEFAULT_LEVEL_TARGETS[level]
    prefix = level.value.lower()

    assignee = _lookup(record, prefix + "assignee")
    return LevelTarget(
        response_time=_minutes(
            _lookup(record, prefix + "responsetime"), default.response_time, f"{level.value} response time"
        ),
        resolution_time=_minutes(
            _lookup(record, *(prefix + key for key in _RESOLUTION_KEYS)),
            default.resolution_time,
            f"{level.value} resolution time"
        ),
        assignee=default.assignee if assignee is None else str(assignee).strip(),
    )


def normalize_rule_record(raw: Mapping[str, Any]) -> EscalationRule:
    """
    Build an EscalationRule from one raw record.

    Blank level values take the standard matrix defaults; an explicit 0 is
    kept as given.

    Raises:
        ValidationException: If the record is not a mapping, names an
            unknown priority or status, or carries a non-numeric time
    """
    if not isinstance(raw, Mapping):
        raise ValidationException("Rule record must be a mapping", details={"record": str(raw)})

    record = _fold_record(raw)

    try:
        priority = Priority.parse(_lookup(record, "priority") or DEFAULT_PRIORITY)
    except ValueError:
        raise ValidationException(
            f"Unknown priority: {record.get('priority')!r}",
            details={"priority": str(record.get("priority"))}
        )

    try:
        status = RuleStatus(_text(record, "status", RuleStatus.ACTIVE.value).upper())
    except ValueError:
        raise ValidationException(
            f"Unknown rule status: {record.get('status')!r}",
            details={"status": str(record.get("status"))}
        )

    return EscalationRule(
        ticket_type=_text(record, "tickettype", DEFAULT_TICKET_TYPE),
        issue_type=_text(record, "issuetype"),
        category=_text(record, "category"),
        sub_category=_text(record, "subcategory"),
        issue=_text(record, "issue"),
        priority=priority,
        levels={level: _level_target(record, level) for level in ESCALATION_LEVELS},
        status=status,
        client_escalation=_flag(record.get("clientescalation")),
        tenant_escalation=_flag(record.get("tenantescalation")),
    )
