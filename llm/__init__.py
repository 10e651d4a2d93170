"""LLM provider clients."""

from llm.base import LLMClient
from llm.openrouter import OpenRouterClient

__all__ = ["LLMClient", "OpenRouterClient"]
