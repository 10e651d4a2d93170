"""Agent state: in-process memory plus persisted key/value and pattern memory.

AgentState is the shared state every component of one agent instance reads
and writes. It has three parts:

1. AgentMemory: process-local and never persisted. Holds the latest
   observation, reasoning and decisions, the active incidents, the actions
   waiting for approval, a bounded signal buffer and the is_processing gate
   that keeps cycles from overlapping.

2. Key/value state: an expiring store in the agent_state collection.
   Writes are advisory and report their outcome as a PersistResult.

3. Pattern memory: the agent_patterns collection. Lets patterns detected in
   one cycle be recognised again in later ones. Rows are never hard-deleted
   and their occurrence counts only go up.

There is no locking. One agent instance runs one cycle at a time in one
event loop, so the in-memory structures only ever have a single writer.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from schemas.action import AgentAction
from schemas.decision import Decision
from schemas.incident import Incident
from schemas.observation import Observation, Pattern
from schemas.reasoning import ReasoningResult
from schemas.signal import Signal
from store.base import (
    AGENT_PATTERNS,
    AGENT_STATE,
    PERSIST_OK,
    DataStore,
    PersistResult,
    eq,
)
from utils.clock import utcnow

logger = logging.getLogger(__name__)

SIGNAL_BUFFER_CAP = 1000
SIGNAL_BUFFER_KEEP = 500


@dataclass
class AgentMemory:
    """Process-local working memory for one agent instance.

    This is a dataclass rather than a Pydantic model because it is an
    internal runtime object. It is never serialized or passed across a
    system boundary; get_stats() is the public projection of it.

    Attributes:
        current_observation: The latest Observation.
        current_reasoning: ReasoningResults from the latest cycle.
        current_decisions: Decisions from the latest cycle.
        active_incidents: Incidents the agent has created and not resolved,
            keyed by incident id.
        pending_actions: Actions waiting for a human decision.
        signal_buffer: Signals seen across cycles, oldest first. Trimmed to
            the newest SIGNAL_BUFFER_KEEP once it exceeds SIGNAL_BUFFER_CAP.
        last_processed_at: When the last cycle finished.
        is_processing: True while a cycle is in flight.
    """

    current_observation: Observation | None = None
    current_reasoning: list[ReasoningResult] = field(default_factory=list)
    current_decisions: list[Decision] = field(default_factory=list)
    active_incidents: dict[str, Incident] = field(default_factory=dict)
    pending_actions: list[AgentAction] = field(default_factory=list)
    signal_buffer: list[Signal] = field(default_factory=list)
    last_processed_at: datetime | None = None
    is_processing: bool = False


class AgentStats(BaseModel):
    """Read-only projection of AgentMemory for status reporting."""

    active_incidents: int
    pending_actions: int
    buffered_signals: int
    is_processing: bool
    last_processed_at: datetime | None


class AgentState:
    """Shared state for one agent instance.

    Attributes:
        memory: The process-local AgentMemory. Read it freely; mutate it
            through the methods below.
        _store: DataStore backing key/value state and pattern memory.
    """

    def __init__(self, store: DataStore) -> None:
        self._store = store
        self.memory = AgentMemory()

    # ── Cycle snapshots ───────────────────────────────────────────────────────

    def set_observation(self, observation: Observation) -> None:
        self.memory.current_observation = observation

    def set_reasoning(self, results: list[ReasoningResult]) -> None:
        self.memory.current_reasoning = list(results)

    def set_decisions(self, decisions: list[Decision]) -> None:
        self.memory.current_decisions = list(decisions)

    # ── Signal buffer ─────────────────────────────────────────────────────────

    def add_signal(self, signal: Signal) -> None:
        """Append a signal, trimming the buffer to its newest half when full."""
        self.memory.signal_buffer.append(signal)
        if len(self.memory.signal_buffer) > SIGNAL_BUFFER_CAP:
            self.memory.signal_buffer = self.memory.signal_buffer[-SIGNAL_BUFFER_KEEP:]

    def add_signals(self, signals: list[Signal]) -> None:
        for signal in signals:
            self.add_signal(signal)

    def flush_signals(self) -> list[Signal]:
        """Return every buffered signal and empty the buffer."""
        signals = self.memory.signal_buffer
        self.memory.signal_buffer = []
        return signals

    # ── Incidents ─────────────────────────────────────────────────────────────

    def track_incident(self, incident: Incident) -> None:
        self.memory.active_incidents[incident.id] = incident

    def update_incident(self, incident_id: str, **changes: Any) -> Incident | None:
        """Apply changes to a tracked incident. Unknown ids are ignored."""
        existing = self.memory.active_incidents.get(incident_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={**changes, "updated_at": utcnow()})
        self.memory.active_incidents[incident_id] = updated
        return updated

    def resolve_incident(self, incident_id: str) -> None:
        self.memory.active_incidents.pop(incident_id, None)

    # ── Pending actions ───────────────────────────────────────────────────────

    def add_pending_action(self, action: AgentAction) -> None:
        self.memory.pending_actions.append(action)

    def complete_action(self, action_id: str) -> None:
        """Drop an action from the pending list. No-op if it is not there."""
        self.memory.pending_actions = [
            a for a in self.memory.pending_actions if a.id != action_id
        ]

    # ── Processing gate ───────────────────────────────────────────────────────

    def set_processing(self, is_processing: bool) -> None:
        """Flip the cycle gate. Clearing it stamps last_processed_at."""
        self.memory.is_processing = is_processing
        if not is_processing:
            self.memory.last_processed_at = utcnow()

    @property
    def is_processing(self) -> bool:
        return self.memory.is_processing

    def get_stats(self) -> AgentStats:
        return AgentStats(
            active_incidents=len(self.memory.active_incidents),
            pending_actions=len(self.memory.pending_actions),
            buffered_signals=len(self.memory.signal_buffer),
            is_processing=self.memory.is_processing,
            last_processed_at=self.memory.last_processed_at,
        )

    def reset(self) -> None:
        """Discard all in-memory state. Persisted state is untouched."""
        self.memory = AgentMemory()

    # ── Persisted key/value state ─────────────────────────────────────────────

    async def persist_state(
        self,
        key: str,
        value: dict[str, Any],
        expires_in_seconds: float | None = None,
    ) -> PersistResult:
        """Upsert value under key, optionally expiring after expires_in_seconds."""
        now = utcnow()
        expires_at = now + timedelta(seconds=expires_in_seconds) if expires_in_seconds else None
        try:
            await self._store.upsert(
                AGENT_STATE,
                {"key": key, "value": value, "expires_at": expires_at, "updated_at": now},
                on_conflict="key",
            )
        except Exception as exc:
            logger.error("Failed to persist state '%s': %s", key, exc)
            return PersistResult.failed(exc)
        return PERSIST_OK

    async def load_state(self, key: str) -> dict[str, Any] | None:
        """Return the value stored under key, or None if absent or expired.

        Expired entries are deleted on read.

        Raises:
            StoreError: If the store cannot serve the read.
        """
        rows = await self._store.select(AGENT_STATE, [eq("key", key)], limit=1)
        if not rows:
            return None

        row = rows[0]
        expires_at = row.get("expires_at")
        if expires_at is not None and expires_at < utcnow():
            logger.debug("State '%s' expired at %s; deleting.", key, expires_at)
            await self.delete_state(key)
            return None

        return row.get("value")

    async def delete_state(self, key: str) -> PersistResult:
        try:
            await self._store.delete(AGENT_STATE, [eq("key", key)])
        except Exception as exc:
            logger.error("Failed to delete state '%s': %s", key, exc)
            return PersistResult.failed(exc)
        return PERSIST_OK

    # ── Pattern memory ────────────────────────────────────────────────────────

    async def store_pattern(
        self,
        pattern_type: str,
        signature: dict[str, Any],
        description: str,
        root_cause: str | None = None,
        confidence: float | None = None,
    ) -> Pattern:
        """Insert a new pattern-memory row and return it with its assigned id."""
        now = utcnow()
        rows = await self._store.insert(AGENT_PATTERNS, {
            "pattern_type": pattern_type,
            "pattern_signature": signature,
            "description": description,
            "associated_root_cause": root_cause,
            "confidence": confidence,
            "occurrences": 1,
            "last_seen_at": now,
            "active": True,
        })
        return Pattern.model_validate(rows[0])

    async def find_similar_patterns(self, pattern_type: str, limit: int = 10) -> list[Pattern]:
        """Return active patterns of pattern_type, most frequently seen first."""
        rows = await self._store.select(
            AGENT_PATTERNS,
            [eq("pattern_type", pattern_type), eq("active", True)],
            order_by="occurrences",
            descending=True,
            limit=limit,
        )
        return [Pattern.model_validate(r) for r in rows]

    async def increment_pattern(self, pattern_id: str) -> Pattern | None:
        """Bump a pattern's occurrence count and refresh last_seen_at.

        Returns the updated pattern, or None if pattern_id is unknown.
        """
        row = await self._store.get(AGENT_PATTERNS, pattern_id)
        if row is None:
            return None
        updated = await self._store.update(AGENT_PATTERNS, pattern_id, {
            "occurrences": (row.get("occurrences") or 0) + 1,
            "last_seen_at": utcnow(),
        })
        return Pattern.model_validate(updated) if updated is not None else None

    async def deactivate_pattern(self, pattern_id: str) -> None:
        """Soft-delete a pattern. It stops matching but keeps its history."""
        await self._store.update(AGENT_PATTERNS, pattern_id, {"active": False})
