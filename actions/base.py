"""Action handler base class.

Defines the contract every action handler must satisfy. Handlers are the
side-effecting units of the Actor. They receive one approved AgentAction and
carry it out: update a ticket, open an incident, page someone.

Handlers are narrow:
- They handle exactly the action types they are registered for
- They do not decide whether an action should run (the Decider and the
  approval workflow already did)
- They do not update the AgentAction record (the Actor does)

Raising is allowed. The Actor catches every exception and turns it into a
failed ExecutionResult, so one broken handler never aborts a batch.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from schemas.action import ActionContext, AgentAction
from schemas.result import ExecutionResult

if TYPE_CHECKING:
    from core.context import AgentContext


class ActionHandler(ABC):
    """Abstract base class for action handlers.

    Example:
        class PagerDutyHandler(ActionHandler):
            async def execute(self, action, context, agent_context):
                await page(action.description)
                return ExecutionResult(action_id=action.id, success=True)

        context = context.with_handler(ActionType.ESCALATE_ENGINEERING, PagerDutyHandler())

    Attributes:
        supports_rollback: Whether rollback() can undo execute(). Handlers
            that set this also set rollback_available on their results.
    """

    supports_rollback: bool = False

    @abstractmethod
    async def execute(
        self,
        action: AgentAction,
        context: ActionContext,
        agent_context: "AgentContext",
    ) -> ExecutionResult | None:
        """Carry out one action.

        Args:
            action: The persisted action record. action.details holds the
                serialized details payload for its action_type.
            context: Incident, merchants and ticket the action applies to.
            agent_context: Store and state of the agent running the action.

        Returns:
            The outcome. None counts as a failure.
        """
        ...

    async def rollback(
        self,
        action: AgentAction,
        result: ExecutionResult,
        agent_context: "AgentContext",
    ) -> None:
        """Undo a previous execute(). Only called when supports_rollback is set.

        Raises:
            NotImplementedError: If the handler cannot be rolled back.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support rollback.")
