"""Actor: persists recommended actions and executes them.

The Actor is the only component that causes side effects. For each action in
a Decision it:

1. Persists an AgentAction record (pending or auto_approved)
2. Queues approval-gated actions in AgentState and stops there
3. Dispatches everything else to the handler registered for its type
4. Records the outcome on the action record

Fault isolation follows the same rule the rest of the loop does: one action
failing never stops its siblings. Handler exceptions, handlers that return
nothing and unknown action types all become failed ExecutionResults, and the
failure is written onto the action record so it stays auditable.

Approval state machine:

    pending ──approve_action──▶ approved ──handler──▶ executed
       └────reject_action──▶ rejected

    auto_approved ──handler──▶ executed

executed is terminal. An executed action is never dispatched again; undo it
with rollback_action() and let a later cycle recommend a fresh one.
"""

import logging

from actions.base import ActionHandler
from core.context import AgentContext
from schemas.action import ActionContext, ActionType, AgentAction, ApprovalStatus
from schemas.decision import Decision, RecommendedAction
from schemas.details import dump_details
from schemas.result import ExecutionResult
from store.base import AGENT_ACTIONS, StoreError
from utils.clock import utcnow

logger = logging.getLogger(__name__)


class Actor:
    """Executes decisions and runs the approval workflow.

    Attributes:
        context: Store, state and handler registry of the owning agent.
    """

    def __init__(self, context: AgentContext) -> None:
        self.context = context

    def with_handler(self, action_type: ActionType | str, handler: ActionHandler) -> "Actor":
        """Return an Actor whose registry maps action_type to handler.

        This Actor and its context keep their existing handlers.
        """
        return Actor(self.context.with_handler(action_type, handler))

    async def execute(
        self,
        decision: Decision,
        context: ActionContext | None = None,
    ) -> list[ExecutionResult]:
        """Persist and run (or queue) every action in decision.

        Actions are handled one at a time in priority order. When a
        create_incident action succeeds, the new incident id is written onto
        every action record of this decision.

        Args:
            decision: The Decider's output for one reasoning result.
            context: Incident, merchants and ticket the actions apply to.

        Returns:
            One ExecutionResult per recommended action, in the same order.

        Raises:
            StoreError: If an action record cannot be created.
        """
        context = context or ActionContext()
        results: list[ExecutionResult] = []
        action_ids: list[str] = []
        incident_id = context.incident_id

        for recommended in decision.recommended_actions:
            action = await self._create_action(recommended, context, incident_id)
            action_ids.append(action.id)

            if action.requires_approval:
                self.context.state.add_pending_action(action)
                logger.info("[ACT] %s queued for approval (%s).", action.action_type.value, action.id)
                results.append(ExecutionResult.pending(action.id))
                continue

            result = await self.execute_action(action, context)
            results.append(result)

            created = _created_incident_id(action, result)
            if created and incident_id is None:
                incident_id = created

        if incident_id and incident_id != context.incident_id:
            await self._link_incident(action_ids, incident_id)

        return results

    async def execute_action(self, action: AgentAction, context: ActionContext) -> ExecutionResult:
        """Dispatch one action to its handler and record the outcome.

        Never raises. Every failure is returned as a failed ExecutionResult.
        """
        if action.executed:
            return ExecutionResult.failure(action.id, "Action already executed")
        if action.requires_approval and action.approval_status != ApprovalStatus.APPROVED:
            return ExecutionResult.failure(action.id, "Action requires approval")

        handler = self.context.handlers.get(action.action_type)
        if handler is None:
            result = ExecutionResult.failure(
                action.id,
                f"No handler registered for action type: {action.action_type.value}",
            )
            logger.error("[ACT] %s", result.error)
            await self._record(action.id, result, executed=False)
            return result

        try:
            outcome = await handler.execute(action, context, self.context)
        except Exception as exc:
            logger.error(
                "[ACT] Handler for %s raised on action %s. Error: %s",
                action.action_type.value,
                action.id,
                exc,
            )
            result = ExecutionResult.failure(action.id, str(exc) or type(exc).__name__)
        else:
            if outcome is None:
                result = ExecutionResult.failure(action.id, "Handler returned no result")
            else:
                result = outcome.model_copy(update={"action_id": action.id})

        if result.success:
            logger.info("[ACT] Executed %s (%s).", action.action_type.value, action.id)

        await self._record(action.id, result, executed=True)
        self.context.state.complete_action(action.id)
        return result

    async def approve_action(self, action_id: str, approved_by: str) -> ExecutionResult:
        """Approve a pending action and execute it immediately.

        Returns a failed result without dispatching when the action does not
        exist, was rejected, or has already executed.
        """
        action = await self._load(action_id)
        if action is None:
            return ExecutionResult.failure(action_id, "Action not found")
        if action.executed:
            return ExecutionResult.failure(action_id, "Action already executed")
        if action.approval_status == ApprovalStatus.REJECTED:
            return ExecutionResult.failure(action_id, "Action was rejected")

        approved_at = utcnow()
        await self.context.store.update(AGENT_ACTIONS, action_id, {
            "approval_status": ApprovalStatus.APPROVED.value,
            "approved_by": approved_by,
            "approved_at": approved_at,
        })
        logger.info("[ACT] Action %s approved by %s.", action_id, approved_by)

        action = action.model_copy(update={
            "approval_status": ApprovalStatus.APPROVED,
            "approved_by": approved_by,
            "approved_at": approved_at,
        })
        context = ActionContext(incident_id=action.incident_id, ticket_id=action.ticket_id)
        return await self.execute_action(action, context)

    async def reject_action(self, action_id: str, rejected_by: str, reason: str | None = None) -> None:
        """Reject a pending action. Nothing is executed.

        Rejecting an unknown or already executed action changes nothing and
        does not raise.
        """
        action = await self._load(action_id)
        if action is None:
            logger.warning("[ACT] Cannot reject %s: action not found.", action_id)
            return
        if action.executed:
            logger.warning("[ACT] Cannot reject %s: action already executed.", action_id)
            return

        await self.context.store.update(AGENT_ACTIONS, action_id, {
            "approval_status": ApprovalStatus.REJECTED.value,
            "approved_by": rejected_by,
            "approved_at": utcnow(),
            "rejection_reason": reason,
        })
        self.context.state.complete_action(action_id)
        logger.info("[ACT] Action %s rejected by %s: %s", action_id, rejected_by, reason)

    async def rollback_action(self, action_id: str) -> ExecutionResult:
        """Undo an executed action through its handler's rollback().

        Only actions whose execution succeeded and declared
        rollback_available can be rolled back, and only once.
        """
        action = await self._load(action_id)
        if action is None:
            return ExecutionResult.failure(action_id, "Action not found")

        recorded = action.execution_result or {}
        if not action.executed or not recorded.get("success") or not recorded.get("rollback_available"):
            return ExecutionResult.failure(action_id, "Action cannot be rolled back")
        if recorded.get("rolled_back"):
            return ExecutionResult.failure(action_id, "Action already rolled back")

        handler = self.context.handlers.get(action.action_type)
        if handler is None or not handler.supports_rollback:
            return ExecutionResult.failure(
                action_id,
                f"No rollback available for action type: {action.action_type.value}",
            )

        previous = ExecutionResult.model_validate(
            {k: v for k, v in recorded.items() if k in ExecutionResult.model_fields}
        )
        try:
            await handler.rollback(action, previous, self.context)
        except Exception as exc:
            logger.error("[ACT] Rollback of %s failed. Error: %s", action_id, exc)
            return ExecutionResult.failure(action_id, str(exc) or type(exc).__name__)

        await self.context.store.update(AGENT_ACTIONS, action_id, {
            "execution_result": {**recorded, "rolled_back": True, "rolled_back_at": utcnow()},
        })
        logger.info("[ACT] Rolled back %s (%s).", action.action_type.value, action_id)
        return ExecutionResult(
            action_id=action_id,
            success=True,
            result={"message": "Rolled back"},
            side_effects=[f"Reverted {action.action_type.value}"],
        )

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _create_action(
        self,
        recommended: RecommendedAction,
        context: ActionContext,
        incident_id: str | None,
    ) -> AgentAction:
        details = dump_details(recommended.details)
        rows = await self.context.store.insert(AGENT_ACTIONS, {
            "incident_id": incident_id,
            "ticket_id": context.ticket_id or details.get("ticket_id"),
            "action_type": recommended.action_type.value,
            "description": recommended.description,
            "details": details,
            "confidence": recommended.confidence,
            "risk_level": recommended.risk_level.value,
            "requires_approval": recommended.requires_approval,
            "approval_status": (
                ApprovalStatus.PENDING if recommended.requires_approval else ApprovalStatus.AUTO_APPROVED
            ).value,
            "approved_by": None,
            "approved_at": None,
            "rejection_reason": None,
            "executed": False,
            "executed_at": None,
            "execution_result": None,
        })
        return AgentAction.model_validate(rows[0])

    async def _load(self, action_id: str) -> AgentAction | None:
        row = await self.context.store.get(AGENT_ACTIONS, action_id)
        return AgentAction.model_validate(row) if row is not None else None

    async def _record(self, action_id: str, result: ExecutionResult, executed: bool) -> None:
        """Write the outcome onto the action record. Failures are logged."""
        changes = {"execution_result": result.model_dump()}
        if executed:
            changes["executed"] = True
            changes["executed_at"] = utcnow()
        try:
            await self.context.store.update(AGENT_ACTIONS, action_id, changes)
        except StoreError as exc:
            logger.error("[ACT] Could not record outcome of %s. Error: %s", action_id, exc)

    async def _link_incident(self, action_ids: list[str], incident_id: str) -> None:
        for action_id in action_ids:
            try:
                await self.context.store.update(AGENT_ACTIONS, action_id, {"incident_id": incident_id})
            except StoreError as exc:
                logger.error("[ACT] Could not link %s to incident %s. Error: %s", action_id, incident_id, exc)
        for pending in self.context.state.memory.pending_actions:
            if pending.id in action_ids and pending.incident_id is None:
                pending.incident_id = incident_id


def _created_incident_id(action: AgentAction, result: ExecutionResult) -> str | None:
    if action.action_type != ActionType.CREATE_INCIDENT or not result.success:
        return None
    return (result.result or {}).get("incident_id")
