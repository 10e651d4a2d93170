"""LLM provider interface used by the cluster classifier.

A provider only has to turn a system prompt plus a user prompt into text. The
classifier owns the prompts and the parsing; providers own transport, auth
and token accounting.
"""

from abc import ABC, abstractmethod


class LLMClient(ABC):
    """One chat-completion provider.

    Wiring code (main.py, cli.py, classifier_from_config) picks the concrete
    provider; the reasoning layer only ever sees this type.

    Attributes:
        model: Provider model identifier. Recorded as model_used on the
            reasoning steps this client produced.
        last_tokens_used: Tokens the provider reported for the latest
            complete() call, 0 when it reports nothing.
    """

    model: str = "unknown"
    last_tokens_used: int = 0

    @abstractmethod
    async def complete(self, system: str, user: str) -> str:
        """Return the model's text reply to one system + user exchange.

        Args:
            system: Role and output contract, e.g. the cluster classifier
                prompt asking for a single JSON object.
            user: The cluster's pattern key and its signal lines.
        """
        ...
