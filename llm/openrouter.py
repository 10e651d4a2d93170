"""OpenRouter LLM client.

The cluster classifier's default oracle. OpenRouter proxies models from many
providers behind one OpenAI-compatible endpoint, so the classifier model is
a configuration value (AGENT_LLM_MODEL) rather than a code change.

Classification answers are always a single JSON object, so requests ask for
JSON output by default. Models that ignore response_format still work; the
parser in utils.parse tolerates fenced or chatty answers.

Required environment variable:
    OPENROUTER_API_KEY: Your OpenRouter API key. Add to .env and never commit.
"""

import logging
import os

import openai
from dotenv import load_dotenv

from llm.base import LLMClient

load_dotenv()

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
APP_TITLE = "self-healing-support-agent"
REQUEST_TIMEOUT_SECONDS = 60.0
MAX_RETRIES = 2


class OpenRouterClient(LLMClient):
    """LLMClient backed by OpenRouter through the openai SDK.

    Example usage:
        classifier = LLMClusterClassifier(OpenRouterClient("google/gemini-2.0-flash"))

    Attributes:
        model: OpenRouter model identifier.
        max_tokens: Completion token cap per request.
        temperature: Sampling temperature. Kept low for classification.
        json_mode: Request a JSON object response.
        client: The async OpenAI client pointed at OpenRouter. Retries and
            timeouts are handled by the SDK.
    """

    def __init__(
        self,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        json_mode: bool = True,
    ):
        """Raises:
            KeyError: If OPENROUTER_API_KEY is not set in the environment or
                .env file. Fails at construction, not at the first call.
        """
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.json_mode = json_mode
        self.client = openai.AsyncOpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=os.environ["OPENROUTER_API_KEY"],
            timeout=REQUEST_TIMEOUT_SECONDS,
            max_retries=MAX_RETRIES,
            default_headers={"X-Title": APP_TITLE},
        )

    async def complete(self, system: str, user: str) -> str:
        """Send one system + user exchange and return the reply text.

        Records the provider's total token count in last_tokens_used. An empty
        reply comes back as "".

        Raises:
            openai.APIError: If OpenRouter still errors after the SDK's retries.
        """
        params = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if self.json_mode:
            params["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**params)

        self.last_tokens_used = response.usage.total_tokens if response.usage else 0
        logger.debug("OpenRouter %s answered using %d tokens.", self.model, self.last_tokens_used)
        return response.choices[0].message.content or ""
