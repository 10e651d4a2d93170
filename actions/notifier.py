"""Webhook escalation handler.

Posts escalations to an HTTP endpoint (a Slack incoming webhook, a paging
service bridge, an internal ticketing hook) instead of only logging them.
AgentContext.create() registers it for both escalation types when
ESCALATION_WEBHOOK_URL is configured.

Payload sent as JSON:
    {
      "action_id": "...",
      "action_type": "escalate_engineering",
      "priority": "high",
      "text": "<action description>",
      "confidence": 0.85,
      "risk_level": "critical",
      "incident_id": null,
      "affected_merchants": ["m1", "m2"]
    }
"""

import logging

import httpx

from actions.base import ActionHandler
from schemas.details import parse_details
from schemas.result import ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


class WebhookEscalationHandler(ActionHandler):
    """Escalation handler that POSTs to a webhook.

    Attributes:
        url: Destination URL.
        timeout_seconds: Per-request timeout.
        _transport: Optional httpx transport. Tests pass an
            httpx.MockTransport here; production leaves it None.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def execute(self, action, context, agent_context):
        """Send the escalation.

        Raises:
            httpx.HTTPStatusError: If the webhook answers with a non-2xx
                status. The Actor records this as a failed execution.
            httpx.TransportError: If the webhook cannot be reached.
        """
        details = parse_details(action.action_type, action.details)
        payload = {
            "action_id": action.id,
            "action_type": action.action_type.value,
            "priority": details.priority,
            "text": action.description,
            "confidence": action.confidence,
            "risk_level": action.risk_level.value,
            "incident_id": context.incident_id or action.incident_id,
            "affected_merchants": context.merchant_ids or details.affected_merchants,
        }

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()

        logger.info(
            "Escalation %s posted to webhook (HTTP %d).",
            action.id,
            response.status_code,
        )
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={
                "message": "Escalation delivered",
                "status_code": response.status_code,
                "priority": details.priority,
            },
            side_effects=[f"Escalation posted to {self.url}"],
        )
