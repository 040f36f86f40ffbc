"""
Escalation State Machine
=========================

Level transitions (L0..L5) and the ticket status workflow.

Two independent escalation policies live here:

- automatic: driven by hours since creation (4h -> L1, 8h -> L2, 16h -> L3).
  These thresholds are fixed and do not read the rule table; deeper levels
  are only reached by hand.
- manual ("Escalate"): one level per call, up to L4, forcing priority P2.

Every transition returns a new Ticket or None when nothing changes.
"""

from datetime import datetime
from typing import Optional, Tuple

from helpdesk_sla.config import EscalationLevel, Priority, TicketStatus
from helpdesk_sla.core import InvalidStatusTransitionException
from helpdesk_sla.escalation.domain.entities import Ticket
from helpdesk_sla.escalation.domain.value_objects import elapsed_minutes, parse_level

NEXT_LEVEL = {
    EscalationLevel.L0: EscalationLevel.L1,
    EscalationLevel.L1: EscalationLevel.L2,
    EscalationLevel.L2: EscalationLevel.L3,
    EscalationLevel.L3: EscalationLevel.L4,
    EscalationLevel.L4: EscalationLevel.L5,
    EscalationLevel.L5: EscalationLevel.L5,
}

# current level -> (next level, hours since creation that trigger it)
AUTO_ESCALATION_THRESHOLDS = {
    EscalationLevel.L0: (EscalationLevel.L1, 4),
    EscalationLevel.L1: (EscalationLevel.L2, 8),
    EscalationLevel.L2: (EscalationLevel.L3, 16),
}

MANUAL_ESCALATION_CEILING = EscalationLevel.L4
MANUAL_ESCALATION_PRIORITY = Priority.P2
MANUALLY_ESCALATABLE_STATUSES = frozenset({TicketStatus.OPEN, TicketStatus.WIP})

STATUS_TRANSITIONS = {
    TicketStatus.OPEN: (TicketStatus.WIP,),
    TicketStatus.WIP: (TicketStatus.RESOLVED,),
    TicketStatus.RESOLVED: (TicketStatus.CLOSED,),
    TicketStatus.CLOSED: (),
    TicketStatus.LAPSED: (),
}


def _bump_priority(priority) -> Priority:
    """P4 moves up to P3; anything already P3 or higher stays put."""
    try:
        parsed = Priority.parse(priority)
    except ValueError:
        return priority
    return Priority.P3 if parsed == Priority.P4 else parsed


class EscalationStateMachine:
    """Stateless transition rules for escalation levels and ticket status."""

    @staticmethod
    def next_level(level) -> str:
        """
        Pure lookup of the level after `level`; L5 maps to itself and
        unknown levels map to L5.

        Timeline views use this to label the next step; it says nothing
        about whether that step may fire automatically.
        """
        parsed = parse_level(level)
        if parsed is None:
            return EscalationLevel.L5.value
        return NEXT_LEVEL[parsed].value

    @staticmethod
    def auto_escalation_target(level: EscalationLevel, hours_elapsed: float) -> EscalationLevel:
        """
        Level a ticket should sit at after `hours_elapsed`, never below `level`.

        Thresholds are walked in order, so a ticket that was missed for a while
        catches up in one step and re-running on the result changes nothing.
        """
        current = level
        while current in AUTO_ESCALATION_THRESHOLDS:
            next_level, threshold_hours = AUTO_ESCALATION_THRESHOLDS[current]
            if hours_elapsed < threshold_hours:
                break
            current = next_level
        return current

    @staticmethod
    def auto_escalate(ticket: Ticket, now: datetime) -> Optional[Ticket]:
        """
        Automatic, time-driven escalation.

        Returns the escalated ticket, or None when the ticket is terminal,
        has an unknown level, or has not crossed its next threshold.

        Raises:
            InvalidTicketTimestampException: If created_at is missing or malformed
        """
        if ticket.is_terminal:
            return None

        current = parse_level(ticket.assigned_level)
        if current is None:
            return None

        hours_elapsed = elapsed_minutes(ticket, now) / 60
        target = EscalationStateMachine.auto_escalation_target(current, hours_elapsed)
        if target == current:
            return None

        return ticket.with_changes(
            assigned_level=target,
            priority=_bump_priority(ticket.priority),
            last_escalated_at=now,
        )

    @staticmethod
    def can_escalate_manually(ticket: Ticket) -> bool:
        level = parse_level(ticket.assigned_level)
        return (
            ticket.status in MANUALLY_ESCALATABLE_STATUSES
            and level is not None
            and level.index < MANUAL_ESCALATION_CEILING.index
        )

    @staticmethod
    def manual_escalate(ticket: Ticket, now: datetime) -> Optional[Ticket]:
        """
        One-step manual escalation, capped at L4, forcing priority P2.

        Returns None when the ticket is already at the ceiling or is not in
        an escalatable status.
        """
        if not EscalationStateMachine.can_escalate_manually(ticket):
            return None

        current = parse_level(ticket.assigned_level)
        return ticket.with_changes(
            assigned_level=NEXT_LEVEL[current],
            priority=MANUAL_ESCALATION_PRIORITY,
            last_escalated_at=now,
        )

    @staticmethod
    def allowed_transitions(status: TicketStatus) -> Tuple[TicketStatus, ...]:
        return STATUS_TRANSITIONS.get(status, ())

    @staticmethod
    def is_valid_transition(from_status: TicketStatus, to_status: TicketStatus) -> bool:
        return to_status in EscalationStateMachine.allowed_transitions(from_status)

    @staticmethod
    def transition_status(ticket: Ticket, to_status: TicketStatus) -> Ticket:
        """
        Move a ticket one step along Open -> WIP -> Resolved -> Closed.

        The escalation level is left untouched.

        Raises:
            InvalidStatusTransitionException: If the step skips or reverses the flow
        """
        if not EscalationStateMachine.is_valid_transition(ticket.status, to_status):
            raise InvalidStatusTransitionException(
                ticket.id,
                getattr(ticket.status, "value", str(ticket.status)),
                getattr(to_status, "value", str(to_status)),
            )
        return ticket.with_changes(status=to_status)
