"""
Escalation Application Services
================================

Application services orchestrate the pure domain rules with the rule
source, the ticket store, the clock and the notifier.

Following SOLID principles:
- Single Responsibility: SLAService answers questions, EscalationService
  produces and applies level changes
- Dependency Inversion: Depend on abstractions (ports), not concrete implementations
"""

import inspect
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from helpdesk_sla.config import (
    TicketStatus, ESCALATION_LEVELS
)
from helpdesk_sla.core import InvalidTicketTimestampException, ResourceNotFoundException
from helpdesk_sla.escalation.domain import (
    EscalationDecision,
    EscalationRule,
    EscalationStateMachine,
    EscalationTimeline,
    RuleMatcher,
    SLACalculator,
    SLAConfig,
    SLAStatus,
    Ticket,
    elapsed_minutes,
)
from helpdesk_sla.escalation.domain.value_objects import coerce_timestamp
from helpdesk_sla.shared.infrastructure.clock import Clock, SystemClock, as_utc
from helpdesk_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

UpdateTicketCallback = Callable[[Ticket], Union[Awaitable[None], None]]


# ========== Ports (Dependency Inversion) ==========

class IRuleProvider(ABC):
    """Read-only access to the current escalation rule snapshot."""

    @abstractmethod
    def get_rules(self) -> Sequence[EscalationRule]:
        """All loaded rules, in source order."""


class ITicketStore(ABC):
    """Interface for the external ticket store."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def list(self, status: Optional[TicketStatus] = None) -> List[Ticket]:
        """List tickets, optionally filtered by status."""

    @abstractmethod
    async def list_active(self) -> List[Ticket]:
        """Tickets that are neither Resolved nor Closed."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> None:
        """Insert or replace a ticket."""


class IEscalationNotifier(ABC):
    """Outbound notification when an escalation is applied."""

    @abstractmethod
    async def notify(self, decision: EscalationDecision) -> bool:
        """Send the notification; returns False instead of raising on failure."""


# ========== Application Services ==========

class SLAService:
    """
    Query surface of the escalation engine.

    Every answer is recomputed from the current rules and the clock.
    """

    def __init__(self, rule_provider: IRuleProvider, clock: Optional[Clock] = None):
        self._rule_provider = rule_provider
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def find_rule(self, ticket: Ticket) -> Optional[EscalationRule]:
        return RuleMatcher.find_rule(self._rule_provider.get_rules(), ticket)

    def get_sla_for_level(self, rule: EscalationRule, level) -> SLAConfig:
        return SLACalculator.sla_for_level(rule, level)

    def get_sla_for_ticket(self, ticket: Ticket) -> Optional[SLAConfig]:
        """SLA targets at the ticket's current level, or None if no rule matches."""
        rule = self.find_rule(ticket)
        if rule is None:
            return None
        return SLACalculator.sla_for_level(rule, ticket.assigned_level)

    def calculate_sla_status(self, ticket: Ticket) -> SLAStatus:
        """
        Health of the ticket's resolution window.

        Falls back to the priority default window when no rule matches, so a
        status is always returned.

        Raises:
            InvalidTicketTimestampException: If created_at is missing or unparseable
        """
        elapsed = elapsed_minutes(ticket, self._clock.now())
        sla_minutes = SLACalculator.resolution_window_minutes(
            self.get_sla_for_ticket(ticket), ticket.priority
        )
        return SLACalculator.calculate_status(elapsed, sla_minutes)

    def is_sla_breached(self, ticket: Ticket) -> bool:
        """
        Whether the ticket has run past its resolution target.

        Time is measured from creation, not from the last escalation, so the
        answer reflects the whole life of the ticket.

        Raises:
            InvalidTicketTimestampException: If a non-terminal ticket has a
                missing or unparseable created_at
        """
        if ticket.is_terminal:
            return False

        elapsed = elapsed_minutes(ticket, self._clock.now())
        sla = self.get_sla_for_ticket(ticket)
        if sla is None:
            return elapsed / 60 > SLACalculator.default_sla_hours(ticket.priority)
        return elapsed > sla.resolution_time_minutes

    def should_auto_escalate(self, ticket: Ticket) -> bool:
        """
        Elapsed time vs. the matched level's response target; False without a rule.

        Raises:
            InvalidTicketTimestampException: If a rule matches and created_at is
                missing or unparseable
        """
        sla = self.get_sla_for_ticket(ticket)
        if sla is None:
            return False
        return elapsed_minutes(ticket, self._clock.now()) > sla.response_time_minutes

    def get_escalation_path(self, ticket: Ticket) -> List[SLAConfig]:
        """SLA configs for every level with a positive resolution target."""
        rule = self.find_rule(ticket)
        if rule is None:
            return []
        path = [SLACalculator.sla_for_level(rule, level) for level in ESCALATION_LEVELS]
        return [sla for sla in path if sla.resolution_time_minutes > 0]

    def get_next_escalation_level(self, level) -> str:
        return EscalationStateMachine.next_level(level)

    def minutes_at_current_level(self, ticket: Ticket) -> float:
        """Minutes since the last escalation, or since creation if never escalated."""
        if ticket.last_escalated_at is None:
            return elapsed_minutes(ticket, self._clock.now())
        since = coerce_timestamp(ticket.id, ticket.last_escalated_at)
        return (as_utc(self._clock.now()) - since).total_seconds() / 60

    def build_timeline(self, ticket: Ticket) -> EscalationTimeline:
        level = getattr(ticket.assigned_level, "value", str(ticket.assigned_level))
        return EscalationTimeline(
            ticket_id=ticket.id,
            current_level=level,
            next_level=self.get_next_escalation_level(level),
            path=tuple(self.get_escalation_path(ticket)),
            total_elapsed_minutes=elapsed_minutes(ticket, self._clock.now()),
            minutes_at_current_level=self.minutes_at_current_level(ticket),
        )


class EscalationService:
    """
    Produces escalation decisions and hands the resulting tickets to the
    store's update callback.

    The periodic tick is a stateless re-scan: decisions depend only on
    timestamps and the current level, so re-running it is harmless.
    """

    def __init__(
        self,
        ticket_store: ITicketStore,
        on_update_ticket: Optional[UpdateTicketCallback] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[IEscalationNotifier] = None
    ):
        self._ticket_store = ticket_store
        self._on_update_ticket = on_update_ticket or ticket_store.save
        self._clock = clock or SystemClock()
        self._notifier = notifier

    def evaluate(self, tickets: Sequence[Ticket]) -> List[EscalationDecision]:
        """
        Compute automatic escalations for `tickets` without applying them.

        Tickets with a missing or malformed created_at are skipped for this
        evaluation; the rest of the batch is still processed.
        """
        now = self._clock.now()
        decisions = []

        for ticket in tickets:
            try:
                escalated = EscalationStateMachine.auto_escalate(ticket, now)
            except InvalidTicketTimestampException as e:
                logger.warning(
                    "Skipping ticket with invalid timestamp",
                    extra={"ticket_id": ticket.id, "error": e.message}
                )
                continue

            if escalated is not None:
                decisions.append(EscalationDecision(before=ticket, after=escalated, trigger="auto"))

        return decisions

    async def run_tick(self) -> dict:
        """
        One evaluator pass over all active tickets.

        Returns:
            Summary of the pass
        """
        tickets = await self._ticket_store.list_active()
        decisions = self.evaluate(tickets)

        notifications_sent = 0
        for decision in decisions:
            await self._apply(decision.after)
            logger.info("Ticket auto-escalated", extra=decision.to_dict())
            if await self._notify(decision):
                notifications_sent += 1

        return {
            "tickets_evaluated": len(tickets),
            "tickets_escalated": len(decisions),
            "notifications_sent": notifications_sent,
            "escalations": [decision.to_dict() for decision in decisions],
        }

    async def escalate_manually(self, ticket_id: str) -> Optional[EscalationDecision]:
        """
        Apply a one-step manual escalation.

        Returns:
            The decision, or None when the ticket is already at the manual
            ceiling or not in an escalatable status

        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        ticket = await self._get_ticket(ticket_id)
        escalated = EscalationStateMachine.manual_escalate(ticket, self._clock.now())
        if escalated is None:
            logger.info(
                "Manual escalation not applied",
                extra={"ticket_id": ticket_id, "level": getattr(ticket.assigned_level, "value", None)}
            )
            return None

        decision = EscalationDecision(before=ticket, after=escalated, trigger="manual")
        await self._apply(escalated)
        logger.info("Ticket manually escalated", extra=decision.to_dict())
        await self._notify(decision)
        return decision

    async def transition_status(self, ticket_id: str, to_status: TicketStatus) -> Ticket:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
            InvalidStatusTransitionException: If the step is not allowed
        """
        ticket = await self._get_ticket(ticket_id)
        updated = EscalationStateMachine.transition_status(ticket, to_status)
        await self._apply(updated)
        logger.info(
            "Ticket status changed",
            extra={"ticket_id": ticket_id, "from_status": ticket.status.value, "to_status": to_status.value}
        )
        return updated

    async def _get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._ticket_store.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _apply(self, ticket: Ticket) -> None:
        result = self._on_update_ticket(ticket)
        if inspect.isawaitable(result):
            await result

    async def _notify(self, decision: EscalationDecision) -> bool:
        if self._notifier is None:
            return False
        return await self._notifier.notify(decision)


__all__ = [
    "IRuleProvider",
    "ITicketStore",
    "IEscalationNotifier",
    "SLAService",
    "EscalationService",
    "UpdateTicketCallback",
]
