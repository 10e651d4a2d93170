"""Observation schemas.

An Observation is the immutable snapshot produced by one Observer cycle:
the signals seen in the window, the recurring patterns found among them, and
the threshold-triggered anomalies. One is produced per cycle and superseded,
never mutated, by the next.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schemas.incident import IncidentSeverity
from schemas.signal import Signal
from utils.clock import utcnow


class Pattern(BaseModel):
    """A recurring structural signature across signals.

    Used both for the per-cycle patterns the Observer detects and for the
    rows of the pattern-memory collection that outlive a cycle.

    Attributes:
        id: Deterministic for per-cycle patterns (e.g.
            "pattern-endpoint-/api/v2/orders"); a store-assigned id for
            pattern-memory rows.
        pattern_type: "repeated_merchant_errors", "endpoint_widespread_failure"
            or "checkout_failure_spike" for detected patterns.
        pattern_signature: The discriminating fields. Carries exactly one of
            merchant_id, endpoint or affected_merchants as the clustering key.
        occurrences: How many cycles have seen this pattern. Only ever
            increases.
        associated_root_cause: Incident classification hint, if the detector
            has one.
        confidence: Detector confidence in the root-cause hint.
        active: Soft-delete flag. Patterns are never hard-deleted.
    """

    id: str
    pattern_type: str
    pattern_signature: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None
    occurrences: int = Field(default=1, ge=0)
    last_seen_at: datetime = Field(default_factory=utcnow)
    associated_root_cause: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Anomaly(BaseModel):
    """A threshold-triggered flag over the current signal batch."""

    type: str
    description: str
    affected_merchants: list[str] = Field(default_factory=list)
    severity: IncidentSeverity


class Observation(BaseModel):
    """Snapshot of one observation cycle. Frozen once built.

    Attributes:
        signals: Newest-first per source, concatenated and capped at the
            configured batch size.
        patterns_detected: Patterns found among signals.
        anomalies: Independent heuristics; a cycle may raise several.
        summary: One-line human-readable digest.
        timestamp: When the snapshot was taken.
    """

    model_config = ConfigDict(frozen=True)

    signals: list[Signal] = Field(default_factory=list)
    patterns_detected: list[Pattern] = Field(default_factory=list)
    anomalies: list[Anomaly] = Field(default_factory=list)
    summary: str
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        """True when there is nothing for the downstream phases to work on."""
        return not self.signals and not self.anomalies
