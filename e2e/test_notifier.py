"""Webhook escalation tests.

The webhook handler runs against httpx.MockTransport, so no network access
is needed.
"""

import json

import httpx
import pytest

from actions.actor import Actor
from actions.handlers import LogEscalationHandler
from actions.notifier import WebhookEscalationHandler
from core.config import AgentConfig
from core.context import AgentContext
from schemas.action import ActionContext, ActionType
from schemas.decision import Decision, RecommendedAction
from schemas.details import build_details
from store.base import AGENT_ACTIONS
from store.memory import InMemoryDataStore

WEBHOOK_URL = "https://hooks.example.com/escalations"


def escalation_decision() -> Decision:
    return Decision(
        recommended_actions=[RecommendedAction(
            action_type=ActionType.ESCALATE_SUPPORT,
            description="Flag for support team follow-up",
            confidence=0.7,
            risk_level="low",
            requires_approval=False,
            priority=1,
            details=build_details(
                ActionType.ESCALATE_SUPPORT, priority="medium", affected_merchants=["m1", "m2"]
            ),
        )],
        reasoning="test",
    )


def webhook_actor(store, handler) -> Actor:
    context = AgentContext.create(store).with_handler(ActionType.ESCALATE_SUPPORT, handler)
    return Actor(context)


@pytest.fixture
def store():
    return InMemoryDataStore()


class TestWebhookEscalationHandler:
    async def test_posts_payload(self, store):
        received = []

        def respond(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        handler = WebhookEscalationHandler(WEBHOOK_URL, transport=httpx.MockTransport(respond))

        [result] = await webhook_actor(store, handler).execute(
            escalation_decision(), ActionContext(incident_id="inc-1")
        )

        assert result.success
        assert result.result["status_code"] == 200
        assert result.side_effects == [f"Escalation posted to {WEBHOOK_URL}"]
        [payload] = received
        assert payload["action_id"] == result.action_id
        assert payload["action_type"] == "escalate_support"
        assert payload["priority"] == "medium"
        assert payload["incident_id"] == "inc-1"
        assert payload["affected_merchants"] == ["m1", "m2"]

    async def test_server_error_becomes_failed_execution(self, store):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        handler = WebhookEscalationHandler(WEBHOOK_URL, transport=transport)

        [result] = await webhook_actor(store, handler).execute(escalation_decision())

        assert not result.success
        assert "500" in result.error
        assert (await store.get(AGENT_ACTIONS, result.action_id))["executed"]

    async def test_unreachable_webhook_becomes_failed_execution(self, store):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        handler = WebhookEscalationHandler(WEBHOOK_URL, transport=httpx.MockTransport(refuse))

        [result] = await webhook_actor(store, handler).execute(escalation_decision())

        assert not result.success
        assert result.error == "connection refused"


class TestContextWiring:
    def test_log_handlers_without_webhook(self, store):
        context = AgentContext.create(store)
        assert isinstance(context.handlers.get(ActionType.ESCALATE_ENGINEERING), LogEscalationHandler)

    def test_webhook_takes_over_both_escalations(self, store):
        context = AgentContext.create(store, AgentConfig(escalation_webhook_url=WEBHOOK_URL))

        for action_type in (ActionType.ESCALATE_ENGINEERING, ActionType.ESCALATE_SUPPORT):
            handler = context.handlers.get(action_type)
            assert isinstance(handler, WebhookEscalationHandler)
            assert handler.url == WEBHOOK_URL
