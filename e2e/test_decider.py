"""Decide phase tests.

Covers the rule table, the approval gate, the default decision, the
standalone auto-approval check and the typed details each action carries.
Pure functions over ReasoningResults; no store writes involved.
"""

import pytest

from core.context import AgentContext
from decision.decider import DEFAULT_ALTERNATIVES, MAX_ALTERNATIVES, Decider, render_description
from decision.rules import CONFIDENCE_THRESHOLDS, DECISION_RULES
from schemas.action import HIGH_RISK_LEVELS, ActionType
from schemas.details import AutoReplyDetails, EscalationDetails, IncidentDetails
from schemas.incident import Evidence
from schemas.reasoning import AffectedScope, ReasoningResult
from store.memory import InMemoryDataStore
from utils.clock import utcnow


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_result(
    classification: str,
    confidence: float = 0.8,
    merchants: tuple[str, ...] = ("m1",),
    evidence: list[Evidence] | None = None,
) -> ReasoningResult:
    return ReasoningResult(
        classification=classification,
        root_cause_hypothesis="something broke",
        confidence=confidence,
        evidence_chain=evidence or [],
        affected_scope=AffectedScope(
            merchants=list(merchants), features=["Checkout"], estimated_impact="Revenue at risk"
        ),
    )


def make_evidence(source_id: str, type: str) -> Evidence:
    return Evidence(type=type, source_id=source_id, description="x", timestamp=utcnow())


def actions_by_type(decision):
    return {a.action_type.value: a for a in decision.recommended_actions}


@pytest.fixture
def decider():
    return Decider(AgentContext.create(InMemoryDataStore()))


# ── Rule scenarios ────────────────────────────────────────────────────────────

class TestRules:
    def test_widespread_platform_regression(self, decider):
        decision = decider.make_decision(make_result("platform_regression", 0.85, ("m1", "m2", "m3")))

        assert [a.action_type.value for a in decision.recommended_actions] == [
            "escalate_engineering", "notify_merchants_batch", "create_incident",
        ]
        actions = actions_by_type(decision)
        assert actions["escalate_engineering"].requires_approval
        assert actions["notify_merchants_batch"].requires_approval
        assert not actions["create_incident"].requires_approval
        assert actions["escalate_engineering"].description == (
            "Escalate to engineering: Platform regression affecting 3 merchants"
        )

    def test_platform_regression_needs_three_merchants(self, decider):
        decision = decider.make_decision(make_result("platform_regression", 0.85, ("m1", "m2")))
        assert [a.action_type.value for a in decision.recommended_actions] == ["escalate_support"]

    def test_payment_issue(self, decider):
        decision = decider.make_decision(make_result("payment_issue", 0.75, ("m1", "m2", "m3")))

        actions = actions_by_type(decision)
        assert list(actions) == ["escalate_engineering", "notify_merchant"]
        assert all(a.requires_approval for a in actions.values())

    def test_confident_config_error(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.8))

        actions = actions_by_type(decision)
        assert list(actions) == ["config_fix_suggestion", "auto_reply"]
        assert not actions["config_fix_suggestion"].requires_approval
        assert actions["auto_reply"].requires_approval

    def test_unsure_config_error_falls_back(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.69))
        assert [a.action_type.value for a in decision.recommended_actions] == ["escalate_support"]

    def test_migration_misstep(self, decider):
        actions = actions_by_type(decider.make_decision(make_result("migration_misstep", 0.7)))
        assert actions["notify_merchant"].requires_approval
        assert not actions["escalate_support"].requires_approval

    def test_documentation_gap_at_low_confidence(self, decider):
        actions = actions_by_type(decider.make_decision(make_result("documentation_gap", 0.3)))
        assert actions["update_documentation"].requires_approval
        assert actions["auto_reply"].requires_approval

    def test_api_outage(self, decider):
        decision = decider.make_decision(make_result("api_outage", 0.99))
        assert [a.action_type.value for a in decision.recommended_actions] == [
            "escalate_engineering", "apply_mitigation", "notify_merchants_batch",
        ]
        assert all(a.requires_approval for a in decision.recommended_actions)

    def test_sorted_by_priority(self, decider):
        for classification in ("platform_regression", "payment_issue", "config_error", "api_outage"):
            decision = decider.make_decision(make_result(classification, 0.9, ("m1", "m2", "m3")))
            priorities = [a.priority for a in decision.recommended_actions]
            assert priorities == sorted(priorities)


class TestApprovalGate:
    def test_confidence_exactly_at_threshold_meets_it(self, decider):
        threshold = CONFIDENCE_THRESHOLDS[ActionType.CONFIG_FIX_SUGGESTION]
        decision = decider.make_decision(make_result("config_error", threshold))
        fix = actions_by_type(decision)["config_fix_suggestion"]
        assert not fix.requires_approval
        assert fix.details.threshold_met

    def test_just_below_threshold_requires_approval(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.79))
        fix = actions_by_type(decision)["config_fix_suggestion"]
        assert fix.requires_approval
        assert fix.details.threshold_met is False
        assert fix.details.threshold_required == 0.8

    @pytest.mark.parametrize("confidence", [0.5, 0.9, 1.0])
    def test_high_risk_always_requires_approval(self, decider, confidence):
        for rule in DECISION_RULES:
            for classification in ("platform_regression", "payment_issue", "config_error",
                                   "migration_misstep", "documentation_gap", "api_outage"):
                result = make_result(classification, confidence, ("m1", "m2", "m3"))
                if not rule.condition(result):
                    continue
                for action in decider.make_decision(result).recommended_actions:
                    if action.risk_level in HIGH_RISK_LEVELS:
                        assert action.requires_approval

    def test_reasoning_counts_split(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.8))
        assert decision.reasoning == (
            "Classified as config_error with 80% confidence. Root cause: something broke "
            "Affecting 1 merchant(s). 1 action(s) can be auto-executed. "
            "1 action(s) require human approval."
        )


class TestDefaultDecision:
    def test_default_escalates_to_support(self, decider):
        decision = decider.make_decision(make_result("platform_regression", 0.4, ("m1",)))

        [action] = decision.recommended_actions
        assert action.action_type == ActionType.ESCALATE_SUPPORT
        assert action.risk_level.value == "low"
        assert not action.requires_approval
        assert action.confidence == 0.4
        assert action.details.reason == "No matching decision rule"
        assert decision.alternatives_considered == DEFAULT_ALTERNATIVES

    def test_alternatives_exclude_recommended_and_are_capped(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.8))

        assert len(decision.alternatives_considered) == MAX_ALTERNATIVES
        assert "config_fix_suggestion" not in decision.alternatives_considered
        assert "auto_reply" not in decision.alternatives_considered
        assert decision.alternatives_considered[0] == "escalate_engineering"


class TestDetails:
    def test_auto_reply_points_at_first_ticket(self, decider):
        evidence = [
            make_evidence("log-1", "webhook_failure"),
            make_evidence("tkt-1", "ticket"),
            make_evidence("tkt-2", "ticket"),
        ]
        decision = decider.make_decision(make_result("config_error", 0.9, evidence=evidence))

        details = actions_by_type(decision)["auto_reply"].details

        assert isinstance(details, AutoReplyDetails)
        assert details.ticket_id == "tkt-1"

    def test_auto_reply_without_ticket(self, decider):
        decision = decider.make_decision(make_result("config_error", 0.9))
        assert actions_by_type(decision)["auto_reply"].details.ticket_id is None

    def test_escalation_priority_from_risk(self, decider):
        critical = actions_by_type(decider.make_decision(make_result("api_outage")))
        high = actions_by_type(decider.make_decision(make_result("payment_issue")))
        low = actions_by_type(decider.make_decision(make_result("migration_misstep")))

        assert isinstance(critical["escalate_engineering"].details, EscalationDetails)
        assert critical["escalate_engineering"].details.priority == "critical"
        assert high["escalate_engineering"].details.priority == "high"
        assert low["escalate_support"].details.priority == "medium"

    def test_incident_carries_evidence_and_impact(self, decider):
        evidence = [make_evidence(f"log-{n}", "api_error") for n in range(3)]
        decision = decider.make_decision(
            make_result("platform_regression", 0.85, ("m1", "m2", "m3"), evidence=evidence)
        )

        details = actions_by_type(decision)["create_incident"].details

        assert isinstance(details, IncidentDetails)
        assert [e.source_id for e in details.evidence] == ["log-0", "log-1", "log-2"]
        assert details.impact_assessment == "Revenue at risk"
        assert details.affected_merchants == ["m1", "m2", "m3"]


class TestRenderDescription:
    def test_placeholders(self):
        text = render_description(
            "{classification} @ {confidence} for {merchant_count} ({features})",
            make_result("payment_issue", 0.756, ("m1", "m2")),
        )
        assert text == "payment_issue @ 76% for 2 (Checkout)"


# ── Auto-approval check ───────────────────────────────────────────────────────

class TestEvaluateForAutoApproval:
    def test_high_risk_is_refused(self, decider):
        verdict = decider.evaluate_for_auto_approval("create_incident", 1.0, "high")
        assert not verdict.approved
        assert verdict.reason == "high risk level requires human approval"

    def test_below_threshold(self, decider):
        verdict = decider.evaluate_for_auto_approval("auto_reply", 0.8, "low")
        assert not verdict.approved
        assert verdict.reason == "Confidence 80% below threshold 85%"

    def test_always_gated_types(self, decider):
        verdict = decider.evaluate_for_auto_approval("apply_mitigation", 0.95, "medium")
        assert not verdict.approved
        assert verdict.reason == "Apply Mitigation always requires human approval"

    def test_approved_at_threshold(self, decider):
        verdict = decider.evaluate_for_auto_approval(ActionType.ESCALATE_SUPPORT, 0.6, "low")
        assert verdict.approved
        assert verdict.reason == "Auto-approved: confidence 60% meets threshold"


# ── decide() ──────────────────────────────────────────────────────────────────

class TestDecide:
    async def test_one_decision_per_result_in_order(self, decider):
        results = [make_result("config_error", 0.8), make_result("payment_issue", 0.75)]

        decisions = await decider.decide(results)

        assert len(decisions) == 2
        assert decisions[0].recommended_actions[0].action_type == ActionType.CONFIG_FIX_SUGGESTION
        assert decisions[1].recommended_actions[0].action_type == ActionType.ESCALATE_ENGINEERING
        assert decider.context.state.memory.current_decisions == decisions

    async def test_no_results_no_decisions(self, decider):
        assert await decider.decide([]) == []
