"""Result schemas.

Defines the outcome of executing a single action (ExecutionResult) and of a
whole Observe → Reason → Decide → Act cycle (AgentLoopResult). These are the
types that cross the agent boundary to the HTTP layer and the CLI.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from schemas.decision import Decision
from schemas.observation import Observation
from schemas.reasoning import ReasoningResult
from utils.clock import utcnow

PENDING_APPROVAL = "pending_approval"


class ExecutionResult(BaseModel):
    """Outcome of dispatching (or queueing) one action.

    Attributes:
        action_id: Id of the persisted AgentAction.
        success: False when the handler raised, returned nothing, or no
            handler exists for the type. True for actions queued for approval.
        result: Handler-specific payload. {"status": "pending_approval"} for
            queued actions.
        error: Error message for failed executions.
        side_effects: Human-readable list of what the handler changed.
        rollback_available: Whether Actor.rollback_action() can undo it.
    """

    action_id: str
    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    side_effects: list[str] = Field(default_factory=list)
    rollback_available: bool = False

    @property
    def is_pending(self) -> bool:
        return bool(self.result) and self.result.get("status") == PENDING_APPROVAL

    @classmethod
    def failure(cls, action_id: str, error: str) -> "ExecutionResult":
        """Build a failed result with no side effects."""
        return cls(action_id=action_id, success=False, error=error)

    @classmethod
    def pending(cls, action_id: str) -> "ExecutionResult":
        """Build the result returned for an action queued for approval."""
        return cls(action_id=action_id, success=True, result={"status": PENDING_APPROVAL})


class AgentLoopResult(BaseModel):
    """Everything one agent cycle observed, concluded, decided and did."""

    observation: Observation
    reasoning_results: list[ReasoningResult] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    execution_results: list[ExecutionResult] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
    duration_ms: float = 0.0

    def summary(self) -> "RunSummary":
        """Aggregate counts for status reporting."""
        return RunSummary(
            signals_observed=len(self.observation.signals),
            patterns_detected=len(self.observation.patterns_detected),
            anomalies_found=len(self.observation.anomalies),
            issues_analyzed=len(self.reasoning_results),
            actions_recommended=sum(len(d.recommended_actions) for d in self.decisions),
            actions_executed=sum(
                1 for r in self.execution_results if r.success and not r.is_pending
            ),
            actions_pending=sum(1 for r in self.execution_results if r.is_pending),
            duration_ms=self.duration_ms,
            timestamp=self.timestamp,
        )


class RunSummary(BaseModel):
    """Aggregated counts for one cycle, as reported by POST /agent/run."""

    signals_observed: int
    patterns_detected: int
    anomalies_found: int
    issues_analyzed: int
    actions_recommended: int
    actions_executed: int
    actions_pending: int
    duration_ms: float
    timestamp: datetime
