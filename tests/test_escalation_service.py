"""Tests for the escalation evaluator, manual escalation and status changes."""
import pytest

from helpdesk_sla.config import EscalationLevel, Priority, TicketStatus
from helpdesk_sla.core import InvalidStatusTransitionException, ResourceNotFoundException
from helpdesk_sla.escalation.application import EscalationService, IEscalationNotifier
from helpdesk_sla.escalation.infrastructure import InMemoryTicketStore

from conftest import make_ticket


class RecordingNotifier(IEscalationNotifier):
    def __init__(self, result=True):
        self.result = result
        self.decisions = []

    async def notify(self, decision):
        self.decisions.append(decision)
        return self.result


@pytest.fixture
def tickets():
    return [
        make_ticket(id="HD-1", minutes_ago=5 * 60, priority=Priority.P4),
        make_ticket(id="HD-2", minutes_ago=3 * 60),
        make_ticket(id="HD-3", minutes_ago=30 * 60, status=TicketStatus.CLOSED),
    ]


@pytest.fixture
def store(tickets):
    return InMemoryTicketStore(tickets)


class TestEvaluate:
    def test_only_tickets_past_a_threshold_are_escalated(self, store, tickets, clock):
        service = EscalationService(store, clock=clock)
        decisions = service.evaluate(tickets)

        assert [d.ticket_id for d in decisions] == ["HD-1"]
        assert decisions[0].after.assigned_level == EscalationLevel.L1
        assert decisions[0].after.priority == Priority.P3
        assert decisions[0].trigger == "auto"

    def test_evaluate_does_not_apply_changes(self, store, tickets, clock):
        updates = []
        service = EscalationService(store, updates.append, clock)
        service.evaluate(tickets)

        assert updates == []

    def test_bad_timestamp_is_skipped_and_batch_continues(self, store, clock):
        batch = [
            make_ticket(id="BAD-1", created_at=None),
            make_ticket(id="BAD-2", created_at="yesterday-ish"),
            make_ticket(id="OK", minutes_ago=5 * 60),
        ]
        decisions = EscalationService(store, clock=clock).evaluate(batch)

        assert [d.ticket_id for d in decisions] == ["OK"]


class TestRunTick:
    async def test_applies_decisions_through_callback(self, store, clock):
        updated = []

        async def on_update(ticket):
            updated.append(ticket)
            await store.save(ticket)

        summary = await EscalationService(store, on_update, clock).run_tick()

        assert summary["tickets_evaluated"] == 2
        assert summary["tickets_escalated"] == 1
        assert [t.id for t in updated] == ["HD-1"]
        assert (await store.get("HD-1")).assigned_level == EscalationLevel.L1

    async def test_sync_callback_is_supported(self, store, clock):
        updated = []
        await EscalationService(store, updated.append, clock).run_tick()

        assert [t.id for t in updated] == ["HD-1"]

    async def test_second_tick_is_a_no_op(self, store, clock):
        service = EscalationService(store, clock=clock)

        await service.run_tick()
        levels_after_first = {t.id: t.assigned_level for t in await store.list()}
        summary = await service.run_tick()
        levels_after_second = {t.id: t.assigned_level for t in await store.list()}

        assert summary["tickets_escalated"] == 0
        assert levels_after_first == levels_after_second

    async def test_levels_climb_as_time_passes(self, store, clock):
        service = EscalationService(store, clock=clock)

        clock.advance(hours=4)   # HD-1 at 9h, HD-2 at 7h
        await service.run_tick()
        assert (await store.get("HD-1")).assigned_level == EscalationLevel.L2
        assert (await store.get("HD-2")).assigned_level == EscalationLevel.L1

        clock.advance(hours=10)
        await service.run_tick()
        assert (await store.get("HD-1")).assigned_level == EscalationLevel.L3
        assert (await store.get("HD-2")).assigned_level == EscalationLevel.L3
        assert (await store.get("HD-3")).assigned_level == EscalationLevel.L0

    async def test_notifier_called_per_escalation(self, store, clock):
        notifier = RecordingNotifier()
        summary = await EscalationService(store, clock=clock, notifier=notifier).run_tick()

        assert [d.ticket_id for d in notifier.decisions] == ["HD-1"]
        assert summary["notifications_sent"] == 1

    async def test_failed_notification_does_not_block_escalation(self, store, clock):
        notifier = RecordingNotifier(result=False)
        summary = await EscalationService(store, clock=clock, notifier=notifier).run_tick()

        assert summary["tickets_escalated"] == 1
        assert summary["notifications_sent"] == 0
        assert (await store.get("HD-1")).assigned_level == EscalationLevel.L1


class TestManualEscalation:
    async def test_escalates_and_saves(self, store, clock):
        decision = await EscalationService(store, clock=clock).escalate_manually("HD-2")

        assert decision.trigger == "manual"
        saved = await store.get("HD-2")
        assert saved.assigned_level == EscalationLevel.L1
        assert saved.priority == Priority.P2

    async def test_ceiling_returns_none(self, clock):
        store = InMemoryTicketStore([make_ticket(id="TOP", assigned_level=EscalationLevel.L4)])
        service = EscalationService(store, clock=clock)

        assert await service.escalate_manually("TOP") is None
        assert (await store.get("TOP")).assigned_level == EscalationLevel.L4

    async def test_unknown_ticket(self, store, clock):
        with pytest.raises(ResourceNotFoundException):
            await EscalationService(store, clock=clock).escalate_manually("NOPE")


class TestStatusTransitions:
    async def test_valid_transition_is_saved(self, store, clock):
        service = EscalationService(store, clock=clock)
        await service.transition_status("HD-2", TicketStatus.WIP)

        assert (await store.get("HD-2")).status == TicketStatus.WIP

    async def test_invalid_transition_raises(self, store, clock):
        with pytest.raises(InvalidStatusTransitionException):
            await EscalationService(store, clock=clock).transition_status("HD-2", TicketStatus.CLOSED)

    async def test_resolved_ticket_is_no_longer_evaluated(self, store, clock):
        service = EscalationService(store, clock=clock)
        await service.transition_status("HD-2", TicketStatus.WIP)
        await service.transition_status("HD-2", TicketStatus.RESOLVED)

        clock.advance(hours=24)
        await service.run_tick()

        assert (await store.get("HD-2")).assigned_level == EscalationLevel.L0
