"""AgentState tests.

Covers the in-process AgentMemory operations, persisted key/value state with
expiry, and pattern memory. Everything runs against the in-memory store.
"""

from datetime import timedelta

import pytest

from core.state import SIGNAL_BUFFER_CAP, SIGNAL_BUFFER_KEEP, AgentState
from schemas.action import AgentAction
from schemas.incident import Incident
from schemas.signal import Signal
from store.base import AGENT_STATE, StoreError
from store.memory import InMemoryDataStore
from utils.clock import utcnow


class BrokenStore(InMemoryDataStore):
    """Store whose writes all fail."""

    async def upsert(self, collection, record, on_conflict="id"):
        raise StoreError("write refused", collection)

    async def delete(self, collection, filters=None):
        raise StoreError("write refused", collection)


@pytest.fixture
def store():
    return InMemoryDataStore()


@pytest.fixture
def state(store):
    return AgentState(store)


def make_signal(n: int) -> Signal:
    return Signal(
        id=f"sig-{n}",
        type="ticket",
        source="support_tickets",
        severity="info",
        message=f"ticket {n}",
        timestamp=utcnow(),
    )


def make_incident(incident_id="inc-1") -> Incident:
    return Incident(id=incident_id, title="Checkout down", type="payment_issue", severity="high")


def make_action(action_id="a1") -> AgentAction:
    return AgentAction(
        id=action_id,
        action_type="notify_merchant",
        description="Notify",
        confidence=0.7,
        risk_level="medium",
        requires_approval=True,
        approval_status="pending",
    )


# ── AgentMemory ───────────────────────────────────────────────────────────────

class TestSignalBuffer:
    def test_buffer_is_trimmed_to_newest_half_when_full(self, state):
        state.add_signals([make_signal(n) for n in range(SIGNAL_BUFFER_CAP + 1)])

        buffer = state.memory.signal_buffer
        assert len(buffer) == SIGNAL_BUFFER_KEEP
        assert buffer[-1].id == f"sig-{SIGNAL_BUFFER_CAP}"

    def test_buffer_at_cap_is_not_trimmed(self, state):
        state.add_signals([make_signal(n) for n in range(SIGNAL_BUFFER_CAP)])
        assert len(state.memory.signal_buffer) == SIGNAL_BUFFER_CAP

    def test_flush_returns_and_empties(self, state):
        state.add_signal(make_signal(1))
        flushed = state.flush_signals()
        assert [s.id for s in flushed] == ["sig-1"]
        assert state.memory.signal_buffer == []


class TestIncidents:
    def test_track_update_resolve(self, state):
        state.track_incident(make_incident())

        updated = state.update_incident("inc-1", status="investigating")
        assert updated.status.value == "investigating"
        assert updated.updated_at is not None
        assert state.memory.active_incidents["inc-1"].status.value == "investigating"

        state.resolve_incident("inc-1")
        assert state.memory.active_incidents == {}

    def test_update_unknown_incident_is_ignored(self, state):
        assert state.update_incident("nope", status="resolved") is None

    def test_resolve_unknown_incident_is_ignored(self, state):
        state.resolve_incident("nope")


class TestPendingActions:
    def test_complete_removes_only_that_action(self, state):
        state.add_pending_action(make_action("a1"))
        state.add_pending_action(make_action("a2"))

        state.complete_action("a1")

        assert [a.id for a in state.memory.pending_actions] == ["a2"]

    def test_complete_unknown_action_is_a_no_op(self, state):
        state.add_pending_action(make_action("a1"))
        state.complete_action("zzz")
        assert len(state.memory.pending_actions) == 1


class TestProcessingGate:
    def test_clearing_stamps_last_processed_at(self, state):
        state.set_processing(True)
        assert state.is_processing
        assert state.memory.last_processed_at is None

        state.set_processing(False)
        assert not state.is_processing
        assert state.memory.last_processed_at is not None

    def test_stats(self, state):
        state.track_incident(make_incident())
        state.add_pending_action(make_action())
        state.add_signal(make_signal(1))

        stats = state.get_stats()

        assert stats.active_incidents == 1
        assert stats.pending_actions == 1
        assert stats.buffered_signals == 1
        assert not stats.is_processing

    def test_reset(self, state):
        state.add_signal(make_signal(1))
        state.set_processing(True)
        state.reset()
        assert state.get_stats().buffered_signals == 0
        assert not state.is_processing


# ── Key/value state ───────────────────────────────────────────────────────────

class TestPersistedState:
    async def test_persist_and_load(self, state):
        result = await state.persist_state("cursor", {"offset": 10})
        assert result.ok
        assert await state.load_state("cursor") == {"offset": 10}

    async def test_persist_overwrites_same_key(self, state, store):
        await state.persist_state("cursor", {"offset": 10})
        await state.persist_state("cursor", {"offset": 20})
        assert await state.load_state("cursor") == {"offset": 20}
        assert store.count(AGENT_STATE) == 1

    async def test_missing_key_loads_none(self, state):
        assert await state.load_state("nope") is None

    async def test_expired_entry_is_deleted_on_read(self, state, store):
        await store.insert(AGENT_STATE, {
            "key": "stale",
            "value": {"x": 1},
            "expires_at": utcnow() - timedelta(seconds=1),
        })

        assert await state.load_state("stale") is None
        assert store.count(AGENT_STATE) == 0

    async def test_unexpired_entry_is_returned(self, state):
        await state.persist_state("fresh", {"x": 1}, expires_in_seconds=60)
        assert await state.load_state("fresh") == {"x": 1}

    async def test_delete(self, state):
        await state.persist_state("k", {"x": 1})
        assert (await state.delete_state("k")).ok
        assert await state.load_state("k") is None

    async def test_failed_writes_are_reported_not_raised(self):
        state = AgentState(BrokenStore())

        persisted = await state.persist_state("k", {"x": 1})
        deleted = await state.delete_state("k")

        assert not persisted.ok and persisted.error == "write refused"
        assert not deleted.ok


# ── Pattern memory ────────────────────────────────────────────────────────────

class TestPatternMemory:
    async def test_store_and_find(self, state):
        stored = await state.store_pattern(
            "endpoint_widespread_failure",
            {"endpoint": "/api/v2/orders"},
            "Endpoint failing",
            root_cause="platform_regression",
            confidence=0.7,
        )

        found = await state.find_similar_patterns("endpoint_widespread_failure")

        assert [p.id for p in found] == [stored.id]
        assert found[0].occurrences == 1
        assert found[0].associated_root_cause == "platform_regression"

    async def test_find_orders_by_occurrences(self, state):
        rare = await state.store_pattern("repeated_merchant_errors", {"merchant_id": "m1"}, "m1")
        common = await state.store_pattern("repeated_merchant_errors", {"merchant_id": "m2"}, "m2")
        await state.increment_pattern(common.id)

        found = await state.find_similar_patterns("repeated_merchant_errors")

        assert [p.id for p in found] == [common.id, rare.id]

    async def test_occurrences_never_decrease(self, state):
        pattern = await state.store_pattern("checkout_failure_spike", {}, "spike")
        counts = []
        for _ in range(3):
            counts.append((await state.increment_pattern(pattern.id)).occurrences)
        assert counts == [2, 3, 4]

    async def test_increment_unknown_returns_none(self, state):
        assert await state.increment_pattern("nope") is None

    async def test_deactivated_patterns_are_not_found(self, state):
        pattern = await state.store_pattern("checkout_failure_spike", {}, "spike")
        await state.deactivate_pattern(pattern.id)
        assert await state.find_similar_patterns("checkout_failure_spike") == []
