"""Act phase tests.

Covers the Actor's dispatch and fault isolation, the approval workflow,
rollback, incident linking and the default handlers with real side effects.
Everything runs against the in-memory store.
"""

import dataclasses

import pytest

from actions.actor import Actor
from actions.base import ActionHandler
from actions.handlers import LogEscalationHandler
from actions.registry import HandlerRegistry
from core.context import AgentContext
from schemas.action import ActionContext, ActionType
from schemas.decision import Decision, RecommendedAction
from schemas.details import build_details
from schemas.incident import Evidence
from schemas.result import ExecutionResult
from store.base import AGENT_ACTIONS, INCIDENTS, SUPPORT_TICKETS
from store.memory import InMemoryDataStore
from utils.clock import utcnow


# ── Helpers ──────────────────────────────────────────────────────────────────

def recommend(
    action_type: ActionType,
    requires_approval: bool = False,
    risk_level: str = "low",
    priority: int = 1,
    **details,
) -> RecommendedAction:
    return RecommendedAction(
        action_type=action_type,
        description=f"{action_type.value} for test",
        confidence=0.9,
        risk_level=risk_level,
        requires_approval=requires_approval,
        priority=priority,
        details=build_details(action_type, **details),
    )


def decide(*actions: RecommendedAction) -> Decision:
    return Decision(recommended_actions=list(actions), reasoning="test")


def incident_action(**overrides) -> RecommendedAction:
    evidence = [
        Evidence(type="api_error", source_id="log-1", description="500", timestamp=utcnow()),
        Evidence(type="ticket", source_id="tkt-1", description="help", timestamp=utcnow()),
    ]
    return recommend(
        ActionType.CREATE_INCIDENT,
        classification="platform_regression",
        affected_merchants=["m1", "m2", "m3"],
        root_cause="bad deploy",
        evidence=evidence,
        impact_assessment="3 merchants affected",
        **overrides,
    )


class RaisingHandler(ActionHandler):
    async def execute(self, action, context, agent_context):
        raise RuntimeError("boom")


class SilentHandler(ActionHandler):
    async def execute(self, action, context, agent_context):
        return None


class RecordingHandler(ActionHandler):
    def __init__(self) -> None:
        self.seen: list[str] = []

    async def execute(self, action, context, agent_context):
        self.seen.append(action.id)
        return ExecutionResult(action_id="ignored", success=True, result={"message": "ok"})


@pytest.fixture
def store():
    return InMemoryDataStore()


@pytest.fixture
def context(store):
    return AgentContext.create(store)


@pytest.fixture
def actor(context):
    return Actor(context)


# ── execute() ─────────────────────────────────────────────────────────────────

class TestExecute:
    async def test_auto_approved_runs_and_gated_waits(self, actor, store):
        results = await actor.execute(decide(
            recommend(ActionType.CONFIG_FIX_SUGGESTION, affected_merchants=["m1"]),
            recommend(ActionType.AUTO_REPLY, requires_approval=True, priority=2),
        ))

        assert results[0].success and not results[0].is_pending
        assert results[1].is_pending

        executed = await store.get(AGENT_ACTIONS, results[0].action_id)
        assert executed["executed"]
        assert executed["approval_status"] == "auto_approved"
        assert executed["execution_result"]["side_effects"] == ["Sent fix suggestion to 1 merchant(s)"]

        pending = await store.get(AGENT_ACTIONS, results[1].action_id)
        assert not pending["executed"]
        assert pending["approval_status"] == "pending"
        assert [a.id for a in actor.context.state.memory.pending_actions] == [results[1].action_id]

    async def test_handler_result_gets_the_action_id(self, actor):
        handler = RecordingHandler()
        [result] = await actor.with_handler(ActionType.ESCALATE_SUPPORT, handler).execute(
            decide(recommend(ActionType.ESCALATE_SUPPORT))
        )
        assert handler.seen == [result.action_id]

    async def test_unknown_handler_is_recorded_not_executed(self, context, store):
        actor = Actor(dataclasses.replace(context, handlers=HandlerRegistry()))

        [result] = await actor.execute(decide(recommend(ActionType.ESCALATE_SUPPORT)))

        assert not result.success
        assert result.error == "No handler registered for action type: escalate_support"
        record = await store.get(AGENT_ACTIONS, result.action_id)
        assert not record["executed"]
        assert record["execution_result"]["error"] == result.error

    async def test_raising_handler_does_not_stop_siblings(self, actor, store):
        actor = actor.with_handler(ActionType.ESCALATE_SUPPORT, RaisingHandler())

        results = await actor.execute(decide(
            recommend(ActionType.ESCALATE_SUPPORT),
            recommend(ActionType.CONFIG_FIX_SUGGESTION, priority=2),
        ))

        assert not results[0].success and results[0].error == "boom"
        assert results[1].success
        record = await store.get(AGENT_ACTIONS, results[0].action_id)
        assert record["executed"]
        assert not record["execution_result"]["success"]

    async def test_handler_returning_nothing_fails(self, actor):
        actor = actor.with_handler(ActionType.ESCALATE_SUPPORT, SilentHandler())
        [result] = await actor.execute(decide(recommend(ActionType.ESCALATE_SUPPORT)))
        assert not result.success
        assert result.error == "Handler returned no result"

    async def test_context_ticket_is_stored(self, actor, store):
        [result] = await actor.execute(
            decide(recommend(ActionType.ESCALATE_SUPPORT)),
            ActionContext(ticket_id="tkt-9"),
        )
        assert (await store.get(AGENT_ACTIONS, result.action_id))["ticket_id"] == "tkt-9"


class TestWithHandler:
    def test_original_actor_is_untouched(self, actor):
        replaced = actor.with_handler(ActionType.ESCALATE_SUPPORT, RecordingHandler())

        assert isinstance(actor.context.handlers.get(ActionType.ESCALATE_SUPPORT), LogEscalationHandler)
        assert isinstance(replaced.context.handlers.get(ActionType.ESCALATE_SUPPORT), RecordingHandler)
        assert replaced.context.state is actor.context.state


# ── Default handlers ──────────────────────────────────────────────────────────

class TestAutoReply:
    async def test_updates_the_ticket(self, actor, store):
        await store.insert(SUPPORT_TICKETS, {"id": "tkt-1", "status": "open", "subject": "help"})

        [result] = await actor.execute(decide(recommend(ActionType.AUTO_REPLY, ticket_id="tkt-1")))

        assert result.success
        ticket = await store.get(SUPPORT_TICKETS, "tkt-1")
        assert ticket["status"] == "in_progress"
        assert ticket["agent_response"] == "auto_reply for test"
        assert ticket["agent_confidence"] == 0.9

    async def test_missing_ticket_fails(self, actor):
        [result] = await actor.execute(decide(recommend(ActionType.AUTO_REPLY, ticket_id="tkt-404")))
        assert not result.success
        assert result.error == "Ticket tkt-404 not found"

    async def test_no_ticket_is_a_no_op(self, actor):
        [result] = await actor.execute(decide(recommend(ActionType.AUTO_REPLY)))
        assert result.success
        assert result.result == {"message": "No ticket referenced"}


class TestCreateIncident:
    async def test_inserts_and_tracks(self, actor, store):
        [result] = await actor.execute(decide(incident_action()))

        incident_id = result.result["incident_id"]
        incident = await store.get(INCIDENTS, incident_id)
        assert incident["type"] == "platform_regression"
        assert incident["severity"] == "medium"
        assert incident["affected_merchant_count"] == 3
        assert incident["related_tickets"] == ["tkt-1"]
        assert incident_id in actor.context.state.memory.active_incidents

    async def test_incident_id_is_linked_to_every_action(self, actor, store):
        results = await actor.execute(decide(
            recommend(ActionType.ESCALATE_ENGINEERING, requires_approval=True, risk_level="critical"),
            recommend(ActionType.NOTIFY_MERCHANTS_BATCH, requires_approval=True, risk_level="medium", priority=2),
            incident_action(priority=3),
        ))

        incident_id = results[2].result["incident_id"]
        for result in results:
            assert (await store.get(AGENT_ACTIONS, result.action_id))["incident_id"] == incident_id
        assert all(a.incident_id == incident_id for a in actor.context.state.memory.pending_actions)

    async def test_context_incident_wins(self, actor, store):
        results = await actor.execute(
            decide(recommend(ActionType.ESCALATE_SUPPORT), incident_action(priority=2)),
            ActionContext(incident_id="inc-existing"),
        )
        record = await store.get(AGENT_ACTIONS, results[0].action_id)
        assert record["incident_id"] == "inc-existing"


# ── Approval workflow ─────────────────────────────────────────────────────────

class TestApproval:
    async def test_approve_executes(self, actor, store):
        [pending] = await actor.execute(decide(recommend(ActionType.NOTIFY_MERCHANT, requires_approval=True)))

        result = await actor.approve_action(pending.action_id, "alice")

        assert result.success
        record = await store.get(AGENT_ACTIONS, pending.action_id)
        assert record["approval_status"] == "approved"
        assert record["approved_by"] == "alice"
        assert record["executed"]
        assert actor.context.state.memory.pending_actions == []

    async def test_approve_unknown(self, actor):
        result = await actor.approve_action("nope", "alice")
        assert result.error == "Action not found"

    async def test_approve_twice(self, actor):
        [pending] = await actor.execute(decide(recommend(ActionType.NOTIFY_MERCHANT, requires_approval=True)))
        await actor.approve_action(pending.action_id, "alice")

        again = await actor.approve_action(pending.action_id, "bob")

        assert not again.success
        assert again.error == "Action already executed"

    async def test_approve_rejected(self, actor):
        [pending] = await actor.execute(decide(recommend(ActionType.NOTIFY_MERCHANT, requires_approval=True)))
        await actor.reject_action(pending.action_id, "bob", "not now")

        result = await actor.approve_action(pending.action_id, "alice")

        assert result.error == "Action was rejected"

    async def test_reject(self, actor, store):
        [pending] = await actor.execute(decide(recommend(ActionType.NOTIFY_MERCHANT, requires_approval=True)))

        await actor.reject_action(pending.action_id, "bob", "wrong merchant")

        record = await store.get(AGENT_ACTIONS, pending.action_id)
        assert record["approval_status"] == "rejected"
        assert record["rejection_reason"] == "wrong merchant"
        assert not record["executed"]
        assert actor.context.state.memory.pending_actions == []

    async def test_reject_after_execution_changes_nothing(self, actor, store):
        [pending] = await actor.execute(decide(recommend(ActionType.NOTIFY_MERCHANT, requires_approval=True)))
        await actor.approve_action(pending.action_id, "alice")

        await actor.reject_action(pending.action_id, "bob")

        assert (await store.get(AGENT_ACTIONS, pending.action_id))["approval_status"] == "approved"

    async def test_reject_unknown_does_not_raise(self, actor):
        await actor.reject_action("nope", "bob")


# ── Rollback ──────────────────────────────────────────────────────────────────

class TestRollback:
    async def test_incident_rollback(self, actor, store):
        [result] = await actor.execute(decide(incident_action()))
        incident_id = result.result["incident_id"]

        rolled_back = await actor.rollback_action(result.action_id)

        assert rolled_back.success
        assert rolled_back.side_effects == ["Reverted create_incident"]
        assert await store.get(INCIDENTS, incident_id) is None
        assert incident_id not in actor.context.state.memory.active_incidents
        record = await store.get(AGENT_ACTIONS, result.action_id)
        assert record["execution_result"]["rolled_back"]

    async def test_only_once(self, actor):
        [result] = await actor.execute(decide(incident_action()))
        await actor.rollback_action(result.action_id)

        again = await actor.rollback_action(result.action_id)

        assert again.error == "Action already rolled back"

    async def test_mitigation_rollback(self, actor):
        [pending] = await actor.execute(decide(
            recommend(ActionType.APPLY_MITIGATION, requires_approval=True, risk_level="high")
        ))
        applied = await actor.approve_action(pending.action_id, "alice")
        key = f"mitigation:{pending.action_id}"
        assert applied.rollback_available
        assert (await actor.context.state.load_state(key))["mitigation_type"] == "temporary"

        rolled_back = await actor.rollback_action(pending.action_id)

        assert rolled_back.success
        assert await actor.context.state.load_state(key) is None

    async def test_log_only_actions_cannot_be_rolled_back(self, actor):
        [result] = await actor.execute(decide(recommend(ActionType.ESCALATE_SUPPORT)))
        rolled_back = await actor.rollback_action(result.action_id)
        assert rolled_back.error == "Action cannot be rolled back"

    async def test_pending_actions_cannot_be_rolled_back(self, actor):
        [pending] = await actor.execute(decide(incident_action(requires_approval=True)))
        rolled_back = await actor.rollback_action(pending.action_id)
        assert rolled_back.error == "Action cannot be rolled back"

    async def test_unknown(self, actor):
        assert (await actor.rollback_action("nope")).error == "Action not found"
