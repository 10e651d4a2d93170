"""Agent context.

AgentContext bundles everything one agent instance shares between its
components: the data store, the AgentState, the action handler registry and
the configuration. Observer, Reasoner, Decider, Actor and the orchestrator
all receive it at construction time, so two agents built from two contexts
never see each other's state.
"""

import dataclasses
import logging
from dataclasses import dataclass, field

from actions.base import ActionHandler
from actions.handlers import default_registry
from actions.notifier import WebhookEscalationHandler
from actions.registry import HandlerRegistry
from core.config import AgentConfig
from core.state import AgentState
from schemas.action import ActionType
from store.base import DataStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContext:
    """Shared dependencies of one agent instance.

    This is a dataclass rather than a Pydantic model because it is an
    internal runtime object holding live resources. It is never serialized.

    Attributes:
        store: Backing DataStore for signals, actions, incidents and state.
        state: In-memory working state plus persisted key/value and pattern
            memory.
        handlers: Action type to handler dispatch table used by the Actor.
        config: Tunables for every component.
    """

    store: DataStore
    state: AgentState
    handlers: HandlerRegistry
    config: AgentConfig = field(default_factory=AgentConfig)

    @classmethod
    def create(cls, store: DataStore, config: AgentConfig | None = None) -> "AgentContext":
        """Build a context with fresh state and the default handler set.

        When config.escalation_webhook_url is set, both escalation types are
        routed to a WebhookEscalationHandler instead of the log-only default.
        """
        config = config or AgentConfig()
        handlers = default_registry()

        if config.escalation_webhook_url:
            webhook = WebhookEscalationHandler(config.escalation_webhook_url)
            handlers.register(ActionType.ESCALATE_ENGINEERING, webhook)
            handlers.register(ActionType.ESCALATE_SUPPORT, webhook)
            logger.info("Escalations routed to webhook %s.", config.escalation_webhook_url)

        return cls(store=store, state=AgentState(store), handlers=handlers, config=config)

    def with_handler(self, action_type: ActionType | str, handler: ActionHandler) -> "AgentContext":
        """Return a new context whose registry maps action_type to handler.

        The receiver is left unchanged. Store and state are shared with the
        returned context.
        """
        handlers = self.handlers.copy()
        handlers.register(action_type, handler)
        return dataclasses.replace(self, handlers=handlers)
