"""Decision rule table.

Each DecisionRule pairs a predicate over a ReasoningResult with the action
templates to recommend when it holds. Rules are evaluated in table order and
every matching rule contributes its templates; the Decider merges them and
sorts the merged list by template priority. Table order therefore only
breaks ties between templates of equal priority.

Approval is never spelled out per template for high and critical risk: the
Decider requires approval for every high or critical action, so
requires_approval on a template only forces approval for lower-risk ones.
"""

from dataclasses import dataclass
from typing import Callable

from schemas.action import ActionType, RiskLevel
from schemas.incident import IncidentType
from schemas.reasoning import ReasoningResult

DEFAULT_THRESHOLD = 0.5

# Minimum confidence for an action type to run without approval
CONFIDENCE_THRESHOLDS: dict[ActionType, float] = {
    ActionType.AUTO_REPLY: 0.85,
    ActionType.NOTIFY_MERCHANT: 0.70,
    ActionType.CONFIG_FIX_SUGGESTION: 0.80,
    ActionType.ESCALATE_SUPPORT: 0.60,
    ActionType.ESCALATE_ENGINEERING: 0.50,
    ActionType.CREATE_INCIDENT: 0.50,
    ActionType.NOTIFY_MERCHANTS_BATCH: 0.75,
    ActionType.UPDATE_DOCUMENTATION: 0.70,
    ActionType.APPLY_MITIGATION: 0.90,
    ActionType.ROLLBACK_RECOMMENDATION: 0.85,
}

# Never auto-approved by evaluate_for_auto_approval, whatever the confidence
ALWAYS_REQUIRE_APPROVAL: frozenset[ActionType] = frozenset({
    ActionType.APPLY_MITIGATION,
    ActionType.ROLLBACK_RECOMMENDATION,
    ActionType.NOTIFY_MERCHANTS_BATCH,
})


def threshold_for(action_type: ActionType) -> float:
    return CONFIDENCE_THRESHOLDS.get(action_type, DEFAULT_THRESHOLD)


@dataclass(frozen=True)
class ActionTemplate:
    """One action a rule recommends.

    Attributes:
        action_type: Handler the action is dispatched to.
        priority: Ascending; 1 runs first.
        risk_level: Blast radius. High and critical always need approval.
        description_template: Rendered by the Decider. Supports
            {merchant_count}, {classification}, {confidence}, {features}.
        requires_approval: Force approval even when risk is low and the
            confidence meets the type's threshold.
    """

    action_type: ActionType
    priority: int
    risk_level: RiskLevel
    description_template: str
    requires_approval: bool = False


@dataclass(frozen=True)
class DecisionRule:
    name: str
    condition: Callable[[ReasoningResult], bool]
    actions: tuple[ActionTemplate, ...]


def _classified(incident_type: IncidentType) -> Callable[[ReasoningResult], bool]:
    return lambda r: r.classification == incident_type


DECISION_RULES: tuple[DecisionRule, ...] = (
    DecisionRule(
        name="widespread_platform_regression",
        condition=lambda r: (
            r.classification == IncidentType.PLATFORM_REGRESSION
            and len(r.affected_scope.merchants) >= 3
        ),
        actions=(
            ActionTemplate(
                ActionType.ESCALATE_ENGINEERING, 1, RiskLevel.CRITICAL,
                "Escalate to engineering: Platform regression affecting {merchant_count} merchants",
            ),
            ActionTemplate(
                ActionType.NOTIFY_MERCHANTS_BATCH, 2, RiskLevel.MEDIUM,
                "Notify affected merchants about known issue and ETA",
                requires_approval=True,
            ),
            ActionTemplate(
                ActionType.CREATE_INCIDENT, 3, RiskLevel.LOW,
                "Create incident ticket for tracking",
            ),
        ),
    ),
    DecisionRule(
        name="payment_issue",
        condition=_classified(IncidentType.PAYMENT_ISSUE),
        actions=(
            ActionTemplate(
                ActionType.ESCALATE_ENGINEERING, 1, RiskLevel.HIGH,
                "Escalate payment issue to engineering for immediate investigation",
            ),
            ActionTemplate(
                ActionType.NOTIFY_MERCHANT, 2, RiskLevel.MEDIUM,
                "Notify merchant(s) about checkout issue being investigated",
                requires_approval=True,
            ),
        ),
    ),
    DecisionRule(
        name="confident_config_error",
        condition=lambda r: r.classification == IncidentType.CONFIG_ERROR and r.confidence >= 0.7,
        actions=(
            ActionTemplate(
                ActionType.CONFIG_FIX_SUGGESTION, 1, RiskLevel.LOW,
                "Send configuration fix suggestion to merchant",
            ),
            ActionTemplate(
                ActionType.AUTO_REPLY, 2, RiskLevel.LOW,
                "Auto-reply to support ticket with fix instructions",
            ),
        ),
    ),
    DecisionRule(
        name="migration_misstep",
        condition=_classified(IncidentType.MIGRATION_MISSTEP),
        actions=(
            ActionTemplate(
                ActionType.NOTIFY_MERCHANT, 1, RiskLevel.LOW,
                "Send migration checklist and troubleshooting guide to merchant",
                requires_approval=True,
            ),
            ActionTemplate(
                ActionType.ESCALATE_SUPPORT, 2, RiskLevel.LOW,
                "Flag for support team follow-up",
            ),
        ),
    ),
    DecisionRule(
        name="documentation_gap",
        condition=_classified(IncidentType.DOCUMENTATION_GAP),
        actions=(
            ActionTemplate(
                ActionType.UPDATE_DOCUMENTATION, 1, RiskLevel.LOW,
                "Suggest documentation update based on common questions",
                requires_approval=True,
            ),
            ActionTemplate(
                ActionType.AUTO_REPLY, 2, RiskLevel.LOW,
                "Auto-reply with relevant documentation links",
            ),
        ),
    ),
    DecisionRule(
        name="api_outage",
        condition=_classified(IncidentType.API_OUTAGE),
        actions=(
            ActionTemplate(
                ActionType.ESCALATE_ENGINEERING, 1, RiskLevel.CRITICAL,
                "URGENT: API outage detected - escalate immediately",
            ),
            ActionTemplate(
                ActionType.APPLY_MITIGATION, 2, RiskLevel.HIGH,
                "Consider applying temporary mitigation (failover, circuit breaker)",
            ),
            ActionTemplate(
                ActionType.NOTIFY_MERCHANTS_BATCH, 3, RiskLevel.MEDIUM,
                "Send status update to all affected merchants",
                requires_approval=True,
            ),
        ),
    ),
)


def matching_rules(result: ReasoningResult) -> list[DecisionRule]:
    return [rule for rule in DECISION_RULES if rule.condition(result)]


def rule_action_types() -> list[ActionType]:
    """Every action type any rule can recommend, in table order."""
    return list(dict.fromkeys(t.action_type for rule in DECISION_RULES for t in rule.actions))
