"""Decider: the Decide phase of the agent loop.

Maps each ReasoningResult to a Decision: the merged action templates of every
matching rule, each marked auto-executable or approval-gated, sorted by
priority. One Decision per ReasoningResult, in the same order.

An action may run without approval only if all of these hold:
- its risk level is low or medium
- the result's confidence is >= the action type's threshold
- its template does not force approval

Every threshold comparison uses >=, so a confidence exactly at the threshold
meets it.
"""

import logging

from core.context import AgentContext
from decision.rules import (
    ALWAYS_REQUIRE_APPROVAL,
    ActionTemplate,
    matching_rules,
    rule_action_types,
    threshold_for,
)
from schemas.action import HIGH_RISK_LEVELS, ActionType, RiskLevel
from schemas.decision import AutoApprovalVerdict, Decision, RecommendedAction
from schemas.details import ActionDetails, build_details
from schemas.incident import Evidence
from schemas.reasoning import ReasoningResult
from schemas.signal import SignalType

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 5
DEFAULT_ALTERNATIVES = [ActionType.AUTO_REPLY.value, ActionType.ESCALATE_ENGINEERING.value]

_ESCALATION_PRIORITY = {
    RiskLevel.CRITICAL: "critical",
    RiskLevel.HIGH: "high",
}


class Decider:
    """Chooses remediation actions for reasoning results.

    Attributes:
        context: State of the owning agent. decide() records its decisions
            there.
    """

    def __init__(self, context: AgentContext) -> None:
        self.context = context

    async def decide(self, results: list[ReasoningResult]) -> list[Decision]:
        decisions = [self.make_decision(r) for r in results]
        self.context.state.set_decisions(decisions)
        for result, decision in zip(results, decisions):
            logger.info(
                "[DECIDE] %s @ %.2f → %s",
                result.classification.value,
                result.confidence,
                ", ".join(a.action_type.value for a in decision.recommended_actions),
            )
        return decisions

    def make_decision(self, result: ReasoningResult) -> Decision:
        """Build the Decision for one result. Pure; touches no state."""
        rules = matching_rules(result)

        if not rules:
            return Decision(
                recommended_actions=[RecommendedAction(
                    action_type=ActionType.ESCALATE_SUPPORT,
                    description="No specific action rule matched. Escalating to support for manual review.",
                    confidence=result.confidence,
                    risk_level=RiskLevel.LOW,
                    requires_approval=False,
                    priority=1,
                    details=build_details(
                        ActionType.ESCALATE_SUPPORT,
                        classification=result.classification.value,
                        affected_merchants=result.affected_scope.merchants,
                        root_cause=result.root_cause_hypothesis,
                        reason="No matching decision rule",
                    ),
                )],
                reasoning=(
                    "Unable to determine specific action. "
                    "Defaulting to support escalation for manual review."
                ),
                alternatives_considered=list(DEFAULT_ALTERNATIVES),
            )

        actions = [
            self._recommend(template, result)
            for rule in rules
            for template in rule.actions
        ]
        actions.sort(key=lambda a: a.priority)

        recommended = {a.action_type for a in actions}
        alternatives = [t.value for t in rule_action_types() if t not in recommended]

        return Decision(
            recommended_actions=actions,
            reasoning=build_reasoning(result, actions),
            alternatives_considered=alternatives[:MAX_ALTERNATIVES],
        )

    def evaluate_for_auto_approval(
        self,
        action_type: ActionType | str,
        confidence: float,
        risk_level: RiskLevel | str,
    ) -> AutoApprovalVerdict:
        """Check whether an action could be auto-approved.

        Independent of decide(). Used to verify manual or administrative
        actions before they run.
        """
        action_type = ActionType(action_type)
        risk_level = RiskLevel(risk_level)

        if risk_level in HIGH_RISK_LEVELS:
            return AutoApprovalVerdict(
                approved=False,
                reason=f"{risk_level.value} risk level requires human approval",
            )

        threshold = threshold_for(action_type)
        if confidence < threshold:
            return AutoApprovalVerdict(
                approved=False,
                reason=f"Confidence {_pct(confidence)} below threshold {_pct(threshold)}",
            )

        if action_type in ALWAYS_REQUIRE_APPROVAL:
            return AutoApprovalVerdict(
                approved=False,
                reason=f"{_title(action_type)} always requires human approval",
            )

        return AutoApprovalVerdict(
            approved=True,
            reason=f"Auto-approved: confidence {_pct(confidence)} meets threshold",
        )

    # ── Private helpers ───────────────────────────────────────────────────────

    def _recommend(self, template: ActionTemplate, result: ReasoningResult) -> RecommendedAction:
        threshold = threshold_for(template.action_type)
        meets_threshold = result.confidence >= threshold
        requires_approval = (
            template.requires_approval
            or not meets_threshold
            or template.risk_level in HIGH_RISK_LEVELS
        )

        return RecommendedAction(
            action_type=template.action_type,
            description=render_description(template.description_template, result),
            confidence=result.confidence,
            risk_level=template.risk_level,
            requires_approval=requires_approval,
            priority=template.priority,
            details=_details_for(template, result, meets_threshold, threshold),
        )


def render_description(template: str, result: ReasoningResult) -> str:
    return (
        template
        .replace("{merchant_count}", str(len(result.affected_scope.merchants)))
        .replace("{classification}", result.classification.value)
        .replace("{confidence}", _pct(result.confidence))
        .replace("{features}", ", ".join(result.affected_scope.features))
    )


def build_reasoning(result: ReasoningResult, actions: list[RecommendedAction]) -> str:
    parts = [
        f"Classified as {result.classification.value} with {_pct(result.confidence)} confidence.",
        f"Root cause: {result.root_cause_hypothesis}",
    ]

    merchants = len(result.affected_scope.merchants)
    if merchants:
        parts.append(f"Affecting {merchants} merchant(s).")

    auto = sum(1 for a in actions if not a.requires_approval)
    gated = len(actions) - auto
    if auto:
        parts.append(f"{auto} action(s) can be auto-executed.")
    if gated:
        parts.append(f"{gated} action(s) require human approval.")

    return " ".join(parts)


def _details_for(
    template: ActionTemplate,
    result: ReasoningResult,
    meets_threshold: bool,
    threshold: float,
) -> ActionDetails:
    fields = {
        "classification": result.classification.value,
        "affected_merchants": result.affected_scope.merchants,
        "root_cause": result.root_cause_hypothesis,
        "threshold_met": meets_threshold,
        "threshold_required": threshold,
    }

    match template.action_type:
        case ActionType.AUTO_REPLY:
            fields["ticket_id"] = _first_ticket(result.evidence_chain)
        case ActionType.ESCALATE_ENGINEERING | ActionType.ESCALATE_SUPPORT:
            fields["priority"] = _ESCALATION_PRIORITY.get(template.risk_level, "medium")
        case ActionType.CREATE_INCIDENT:
            fields["evidence"] = result.evidence_chain
            fields["impact_assessment"] = result.affected_scope.estimated_impact

    return build_details(template.action_type, **fields)


def _first_ticket(evidence: list[Evidence]) -> str | None:
    return next((e.source_id for e in evidence if e.type == SignalType.TICKET.value), None)


def _pct(value: float) -> str:
    return f"{round(value * 100)}%"


def _title(action_type: ActionType) -> str:
    return " ".join(word.capitalize() for word in action_type.value.split("_"))
