"""
Escalation Value Objects
=========================

Derived, immutable SLA figures and the stateless calculator that produces
them.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from helpdesk_sla.config import EscalationLevel, Priority, SLAHealth
from helpdesk_sla.core import InvalidTicketTimestampException
from helpdesk_sla.escalation.domain.entities import EscalationRule, Ticket
from helpdesk_sla.shared.infrastructure.clock import as_utc

# Fallback resolution windows (hours) when no escalation rule matches
DEFAULT_SLA_HOURS = {
    Priority.P1: 4,
    Priority.P2: 8,
    Priority.P3: 24,
    Priority.P4: 48,
}
FALLBACK_SLA_HOURS = 48

WARNING_PERCENTAGE = 75
UNASSIGNED = "Unassigned"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from the floor, the way dashboard figures have always been rounded."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def minutes_to_hours(minutes: float) -> float:
    return round_half_up(minutes / 60, 1)


def format_minutes(minutes: int) -> str:
    """45 -> '45min', 120 -> '2h', 150 -> '2h 30min'."""
    if minutes < 60:
        return f"{minutes}min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}min" if mins else f"{hours}h"


def parse_level(value: Union[str, EscalationLevel, None]) -> Optional[EscalationLevel]:
    """Return the EscalationLevel named by `value`, or None if it names none."""
    if isinstance(value, EscalationLevel):
        return value
    try:
        return EscalationLevel(str(value).strip().upper())
    except ValueError:
        return None


def coerce_timestamp(ticket_id: str, value: object) -> datetime:
    """
    Return `value` as an aware UTC datetime.

    Raises:
        InvalidTicketTimestampException: If the value is missing or unparseable
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise InvalidTicketTimestampException(ticket_id, value)


def elapsed_minutes(ticket: Ticket, now: datetime) -> float:
    """Minutes since the ticket was created."""
    created_at = coerce_timestamp(ticket.id, ticket.created_at)
    return (as_utc(now) - created_at).total_seconds() / 60


@dataclass(frozen=True)
class SLAConfig:
    """Resolved SLA parameters for a ticket at one escalation level."""

    level: str
    response_time_minutes: int
    resolution_time_minutes: int
    assignee: str
    response_time_hours: float
    resolution_time_hours: float

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "response_time_minutes": self.response_time_minutes,
            "resolution_time_minutes": self.resolution_time_minutes,
            "assignee": self.assignee,
            "response_time_hours": self.response_time_hours,
            "resolution_time_hours": self.resolution_time_hours,
        }


@dataclass(frozen=True)
class SLAStatus:
    """Breach flag, remaining time and health of a ticket's SLA window."""

    breached: bool
    remaining_minutes: float
    remaining_hours: float
    resolution_time_hours: float
    percentage_used: int
    status: SLAHealth

    def to_dict(self) -> dict:
        return {
            "breached": self.breached,
            "remaining_minutes": self.remaining_minutes,
            "remaining_hours": self.remaining_hours,
            "resolution_time_hours": self.resolution_time_hours,
            "percentage_used": self.percentage_used,
            "status": self.status.value,
        }


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class: callers pass in the rule, the ticket and the
    current time, nothing is cached.
    """

    @staticmethod
    def sla_for_level(rule: EscalationRule, level: Union[str, EscalationLevel, None]) -> SLAConfig:
        """
        Select the targets of `rule` at `level`.

        An unknown level yields a zeroed config assigned to "Unassigned"
        instead of an error, so a bad level string never breaks a view.
        """
        parsed = parse_level(level)
        if parsed is None:
            return SLAConfig(
                level=str(level),
                response_time_minutes=0,
                resolution_time_minutes=0,
                assignee=UNASSIGNED,
                response_time_hours=0,
                resolution_time_hours=0,
            )

        target = rule.target_for(parsed)
        return SLAConfig(
            level=parsed.value,
            response_time_minutes=target.response_time,
            resolution_time_minutes=target.resolution_time,
            assignee=target.assignee,
            response_time_hours=minutes_to_hours(target.response_time),
            resolution_time_hours=minutes_to_hours(target.resolution_time),
        )

    @staticmethod
    def default_sla_hours(priority: Union[str, Priority, None]) -> int:
        """Priority fallback window; unknown priorities get the most lenient one."""
        try:
            return DEFAULT_SLA_HOURS[Priority.parse(priority)]
        except ValueError:
            return FALLBACK_SLA_HOURS

    @staticmethod
    def resolution_window_minutes(sla: Optional[SLAConfig], priority: Union[str, Priority, None]) -> float:
        """Resolution target of the matched level, or the priority fallback."""
        if sla is not None and sla.resolution_time_minutes:
            return sla.resolution_time_minutes
        return SLACalculator.default_sla_hours(priority) * 60

    @staticmethod
    def health(remaining_minutes: float, percentage_used: int) -> SLAHealth:
        if remaining_minutes <= 0:
            return SLAHealth.CRITICAL
        if percentage_used >= WARNING_PERCENTAGE:
            return SLAHealth.WARNING
        return SLAHealth.ON_TRACK

    @staticmethod
    def calculate_status(elapsed: float, sla_minutes: float) -> SLAStatus:
        """
        Derive the SLA status from minutes elapsed and the window length.

        Args:
            elapsed: Minutes since ticket creation
            sla_minutes: Length of the resolution window in minutes (> 0)
        """
        remaining = sla_minutes - elapsed
        percentage_used = int(min(100, round_half_up(elapsed / sla_minutes * 100)))

        return SLAStatus(
            breached=remaining <= 0,
            remaining_minutes=max(0.0, remaining),
            remaining_hours=max(0.0, minutes_to_hours(remaining)),
            resolution_time_hours=minutes_to_hours(sla_minutes),
            percentage_used=percentage_used,
            status=SLACalculator.health(remaining, percentage_used),
        )


@dataclass(frozen=True)
class EscalationDecision:
    """A level change the engine wants applied: the ticket before and after."""

    before: Ticket
    after: Ticket
    trigger: str

    @property
    def ticket_id(self) -> str:
        return self.after.id

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.ticket_id,
            "trigger": self.trigger,
            "from_level": getattr(self.before.assigned_level, "value", self.before.assigned_level),
            "to_level": getattr(self.after.assigned_level, "value", self.after.assigned_level),
            "from_priority": getattr(self.before.priority, "value", self.before.priority),
            "to_priority": getattr(self.after.priority, "value", self.after.priority),
        }


@dataclass(frozen=True)
class EscalationTimeline:
    """Everything a timeline view needs to draw a ticket's escalation path."""

    ticket_id: str
    current_level: str
    next_level: str
    path: Tuple[SLAConfig, ...]
    total_elapsed_minutes: float
    minutes_at_current_level: float
