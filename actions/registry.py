"""Action handler registry.

HandlerRegistry maps each ActionType to the handler that carries it out. The
Actor delegates every lookup to this class.

Registering a type that already has a handler replaces it. That is how real
integrations (a paging webhook, an email sender) take over from the default
log-only handlers without touching the Actor.
"""

from actions.base import ActionHandler
from schemas.action import ActionType


class HandlerRegistry:
    """Tracks registered handlers and provides lookup by action type.

    Internally backed by a dict keyed on ActionType, which gives O(1) lookup
    for get() without scanning.

    Attributes:
        _handlers: Internal dict mapping action type to handler instance.
    """

    def __init__(self, handlers: dict[ActionType, ActionHandler] | None = None) -> None:
        self._handlers: dict[ActionType, ActionHandler] = dict(handlers or {})

    def register(self, action_type: ActionType | str, handler: ActionHandler) -> None:
        """Register handler for action_type, replacing any existing one.

        Raises:
            ValueError: If action_type is not a known ActionType.
        """
        self._handlers[ActionType(action_type)] = handler

    def get(self, action_type: ActionType | str) -> ActionHandler | None:
        """Look up the handler for action_type.

        Returns None rather than raising if no handler is registered, because
        a missing handler is a configuration problem the Actor reports as a
        failed execution, not an exceptional condition.
        """
        try:
            return self._handlers.get(ActionType(action_type))
        except ValueError:
            return None

    def copy(self) -> "HandlerRegistry":
        """Return an independent registry with the same handlers."""
        return HandlerRegistry(self._handlers)

    def action_types(self) -> list[ActionType]:
        return list(self._handlers)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
