"""Default action handlers.

One handler per ActionType. Most are log-only stand-ins for integrations a
real deployment would wire in (paging, email, a docs backlog); they write
their notification through the logger and report what they would have
changed. Three have real side effects on the data store:

    auto_reply        writes the agent's response onto the support ticket
    create_incident   inserts an Incident and tracks it in AgentState
    apply_mitigation  records the mitigation in key/value state

create_incident and apply_mitigation can be rolled back.
"""

import logging
from typing import TYPE_CHECKING

from actions.base import ActionHandler
from actions.registry import HandlerRegistry
from schemas.action import ActionContext, ActionType, AgentAction, RiskLevel
from schemas.details import parse_details
from schemas.incident import Incident, IncidentSeverity, IncidentType
from schemas.result import ExecutionResult
from store.base import INCIDENTS, SUPPORT_TICKETS, StoreError, eq
from utils.clock import utcnow

if TYPE_CHECKING:
    from core.context import AgentContext

logger = logging.getLogger(__name__)

MAX_INCIDENT_EVIDENCE = 20

_RISK_TO_SEVERITY = {
    RiskLevel.CRITICAL: IncidentSeverity.CRITICAL,
    RiskLevel.HIGH: IncidentSeverity.HIGH,
}


def _merchants_for(action: AgentAction, context: ActionContext) -> list[str]:
    """Merchants from the execution context, else from the action details."""
    if context.merchant_ids:
        return list(context.merchant_ids)
    return list((action.details or {}).get("affected_merchants") or [])


class AutoReplyHandler(ActionHandler):
    """Write an agent-authored response onto the referenced ticket."""

    async def execute(self, action, context, agent_context):
        details = parse_details(action.action_type, action.details)
        ticket_id = context.ticket_id or details.ticket_id or action.ticket_id

        if ticket_id is None:
            logger.info("Auto-reply %s has no ticket to answer; nothing sent.", action.id)
            return ExecutionResult(
                action_id=action.id,
                success=True,
                result={"message": "No ticket referenced"},
            )

        updated = await agent_context.store.update(SUPPORT_TICKETS, ticket_id, {
            "agent_response": details.response or action.description,
            "agent_confidence": action.confidence,
            "status": "in_progress",
            "updated_at": utcnow(),
        })
        if updated is None:
            return ExecutionResult.failure(action.id, f"Ticket {ticket_id} not found")

        logger.info("Auto-replied to ticket %s.", ticket_id)
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={"message": "Auto-reply sent", "ticket_id": ticket_id},
            side_effects=["Ticket status updated to in_progress"],
        )


class LogEscalationHandler(ActionHandler):
    """Log-only escalation to a team channel."""

    def __init__(self, team: str, channel: str, side_effect: str) -> None:
        self.team = team
        self.channel = channel
        self.side_effect = side_effect

    async def execute(self, action, context, agent_context):
        details = parse_details(action.action_type, action.details)
        logger.warning("%s ESCALATION [%s]: %s", self.team.upper(), details.priority, action.description)
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={
                "message": f"Escalated to {self.team}",
                "channel": self.channel,
                "priority": details.priority,
            },
            side_effects=[self.side_effect],
        )


class MerchantNotificationHandler(ActionHandler):
    """Log-only notification to one merchant or a batch of them."""

    def __init__(self, batch: bool = False) -> None:
        self.batch = batch

    async def execute(self, action, context, agent_context):
        merchants = _merchants_for(action, context)
        label = "Batch notified" if self.batch else "Notified"
        logger.info(
            "%sMERCHANT NOTIFICATION to %d merchant(s) %s: %s",
            "BATCH " if self.batch else "",
            len(merchants),
            merchants,
            action.description,
        )
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={
                "message": "Batch notification sent" if self.batch else "Notification sent",
                "merchants_notified": len(merchants),
            },
            side_effects=[f"{label} {len(merchants)} merchant(s)"],
        )


class CreateIncidentHandler(ActionHandler):
    """Open an Incident for the classified issue and track it in AgentState."""

    supports_rollback = True

    async def execute(self, action, context, agent_context):
        details = parse_details(action.action_type, action.details)

        evidence = details.evidence[:MAX_INCIDENT_EVIDENCE]
        related_tickets = [e.source_id for e in evidence if e.type == "ticket"]
        merchants = list(details.affected_merchants)

        rows = await agent_context.store.insert(INCIDENTS, {
            "title": action.description,
            "description": details.root_cause,
            "type": IncidentType(details.classification or IncidentType.CONFIG_ERROR).value,
            "severity": _RISK_TO_SEVERITY.get(action.risk_level, IncidentSeverity.MEDIUM).value,
            "affected_merchants": merchants,
            "affected_merchant_count": len(merchants),
            "root_cause": details.root_cause,
            "root_cause_confidence": action.confidence,
            "evidence": [e.model_dump() for e in evidence],
            "related_tickets": related_tickets,
            "impact_assessment": details.impact_assessment,
            "status": "detected",
        })
        incident = Incident.model_validate(rows[0])
        agent_context.state.track_incident(incident)

        logger.info("Created incident %s (%s, %s).", incident.id, incident.type.value, incident.severity.value)
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={"message": "Incident created", "incident_id": incident.id},
            side_effects=["New incident created for tracking"],
            rollback_available=True,
        )

    async def rollback(self, action, result, agent_context):
        incident_id = (result.result or {}).get("incident_id")
        if not incident_id:
            raise ValueError(f"Execution of action {action.id} recorded no incident id.")
        await agent_context.store.delete(INCIDENTS, [eq("id", incident_id)])
        agent_context.state.resolve_incident(incident_id)
        logger.info("Rolled back incident %s.", incident_id)


class SuggestionHandler(ActionHandler):
    """Log-only suggestion queued for follow-up by a human."""

    def __init__(self, label: str, message: str, side_effect: str) -> None:
        self.label = label
        self.message = message
        self.side_effect = side_effect

    async def execute(self, action, context, agent_context):
        merchants = _merchants_for(action, context)
        logger.info("%s: %s", self.label, action.description)
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={"message": self.message, "suggestion": action.description},
            side_effects=[self.side_effect.format(merchant_count=len(merchants))],
        )


class MitigationHandler(ActionHandler):
    """Apply a temporary mitigation, recorded as mitigation:<action_id> state."""

    supports_rollback = True

    async def execute(self, action, context, agent_context):
        details = parse_details(action.action_type, action.details)

        persisted = await agent_context.state.persist_state(_mitigation_key(action.id), {
            "description": action.description,
            "mitigation_type": details.mitigation_type,
            "merchants": _merchants_for(action, context),
            "applied_at": utcnow().isoformat(),
        })
        if not persisted.ok:
            raise StoreError(f"Could not record mitigation: {persisted.error}")

        logger.warning("MITIGATION APPLIED: %s", action.description)
        return ExecutionResult(
            action_id=action.id,
            success=True,
            result={"message": "Mitigation applied", "mitigation_type": details.mitigation_type},
            side_effects=["Temporary mitigation in place"],
            rollback_available=True,
        )

    async def rollback(self, action, result, agent_context):
        removed = await agent_context.state.delete_state(_mitigation_key(action.id))
        if not removed.ok:
            raise StoreError(f"Could not remove mitigation: {removed.error}")
        logger.warning("MITIGATION ROLLED BACK: %s", action.description)


def default_registry() -> HandlerRegistry:
    """Return a registry with a handler for every ActionType."""
    registry = HandlerRegistry()
    registry.register(ActionType.AUTO_REPLY, AutoReplyHandler())
    registry.register(
        ActionType.ESCALATE_ENGINEERING,
        LogEscalationHandler("engineering", "engineering-alerts", "Notification sent to engineering channel"),
    )
    registry.register(
        ActionType.ESCALATE_SUPPORT,
        LogEscalationHandler("support", "support-queue", "Added to support queue"),
    )
    registry.register(ActionType.NOTIFY_MERCHANT, MerchantNotificationHandler())
    registry.register(ActionType.NOTIFY_MERCHANTS_BATCH, MerchantNotificationHandler(batch=True))
    registry.register(ActionType.CREATE_INCIDENT, CreateIncidentHandler())
    registry.register(
        ActionType.CONFIG_FIX_SUGGESTION,
        SuggestionHandler(
            "CONFIG FIX SUGGESTION",
            "Configuration fix suggestion sent",
            "Sent fix suggestion to {merchant_count} merchant(s)",
        ),
    )
    registry.register(
        ActionType.UPDATE_DOCUMENTATION,
        SuggestionHandler(
            "DOCUMENTATION UPDATE REQUESTED",
            "Documentation update task created",
            "Documentation task added to backlog",
        ),
    )
    registry.register(ActionType.APPLY_MITIGATION, MitigationHandler())
    registry.register(
        ActionType.ROLLBACK_RECOMMENDATION,
        SuggestionHandler(
            "ROLLBACK RECOMMENDED",
            "Rollback recommendation created",
            "Rollback recommendation sent to engineering",
        ),
    )
    return registry


# ── Private helpers ────────────────────────────────────────────────────────────

def _mitigation_key(action_id: str) -> str:
    return f"mitigation:{action_id}"
