"""Decision schemas.

A Decision is what the Decider produces for one ReasoningResult: a ranked
list of remediation actions, each already marked as auto-executable or
approval-gated, plus a human-readable explanation.
"""

from pydantic import BaseModel, Field

from schemas.action import ActionType, RiskLevel
from schemas.details import ActionDetails


class RecommendedAction(BaseModel):
    """One candidate remediation.

    Attributes:
        action_type: Which handler will run it.
        description: Rendered from the matching rule's template.
        confidence: Carried over from the reasoning result.
        risk_level: From the rule template.
        requires_approval: True unless the action is low-blast-radius,
            confident enough for its type and not forced by its template.
        priority: Ascending; 1 is the most urgent.
        details: Typed payload for the action type.
    """

    action_type: ActionType
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    risk_level: RiskLevel
    requires_approval: bool
    priority: int
    details: ActionDetails


class Decision(BaseModel):
    """Ranked actions for one reasoning result.

    Attributes:
        recommended_actions: Sorted by priority ascending.
        reasoning: Summary of classification, confidence, root cause,
            merchant count and the auto/approval split.
        alternatives_considered: Known action types that were not
            recommended, capped at five.
    """

    recommended_actions: list[RecommendedAction] = Field(default_factory=list)
    reasoning: str
    alternatives_considered: list[str] = Field(default_factory=list)


class AutoApprovalVerdict(BaseModel):
    """Outcome of Decider.evaluate_for_auto_approval()."""

    approved: bool
    reason: str
