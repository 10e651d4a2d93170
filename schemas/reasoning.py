"""Reasoning schemas.

Defines the output of the Reasoner: one ReasoningResult per analyzed signal
cluster, each carrying its evidence chain and the ordered reasoning log that
led to it. Evidence and steps are an audit trail; their order is preserved
end to end, including in the persisted reasoning_logs collection.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from schemas.incident import Evidence, IncidentType
from utils.clock import utcnow


class AgentPhase(str, Enum):
    """The four stages of one agent cycle."""

    OBSERVE = "observe"
    REASON = "reason"
    DECIDE = "decide"
    ACT = "act"


class ReasoningStep(BaseModel):
    """A single entry in the reasoning log.

    Attributes:
        step_number: Monotonically increasing within one reason() call.
        phase: Always "reason" for entries written by the Reasoner.
        thought: What the step looked at.
        evidence: Structured data the step based its thought on.
        conclusion: What the step concluded, if anything. "Analysis failed"
            for clusters whose classification raised.
        confidence: Confidence of the conclusion. 0 for failed steps.
        tokens_used: LLM tokens spent, when an LLM oracle was used.
        model_used: Identifier of the classifier that produced the conclusion.
        duration_ms: Wall-clock time of the step.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incident_id: str | None = None
    ticket_id: str | None = None
    action_id: str | None = None
    step_number: int = Field(ge=1)
    phase: AgentPhase = AgentPhase.REASON
    thought: str
    evidence: dict[str, Any] | None = None
    conclusion: str | None = None
    confidence: float | None = None
    tokens_used: int | None = None
    model_used: str | None = None
    duration_ms: float | None = None
    created_at: datetime = Field(default_factory=utcnow)


class AffectedScope(BaseModel):
    """Who and what a classified issue touches."""

    merchants: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    estimated_impact: str = ""


class ClusterAnalysis(BaseModel):
    """What a cluster classifier returns for one cluster.

    This is also the JSON schema the LLM oracle is asked to respond with.
    """

    classification: IncidentType
    root_cause_hypothesis: str
    confidence: float = Field(ge=0.0, le=1.0)
    affected_features: list[str] = Field(default_factory=list)
    impact_assessment: str = ""
    tokens_used: int = 0


class ReasoningResult(BaseModel):
    """Classification of one signal cluster.

    Attributes:
        incident_id: None until a create_incident action for this result
            runs; the orchestrator stamps it afterwards.
        classification: Incident taxonomy bucket.
        root_cause_hypothesis: Free-text hypothesis from the classifier.
        confidence: Classifier confidence on a 0.0-1.0 scale.
        evidence_chain: One Evidence per cluster signal, in cluster order.
        affected_scope: Deduplicated merchants, features, impact text.
        reasoning_steps: The reasoning log up to and including this
            cluster's analysis step.
    """

    incident_id: str | None = None
    classification: IncidentType
    root_cause_hypothesis: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_chain: list[Evidence] = Field(default_factory=list)
    affected_scope: AffectedScope = Field(default_factory=AffectedScope)
    reasoning_steps: list[ReasoningStep] = Field(default_factory=list)
