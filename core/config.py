"""Agent configuration.

All tunables live in three pydantic models so that bad values fail loudly at
start-up instead of surfacing as odd behaviour mid-cycle. Defaults match the
values the agent was tuned with; load_config() overlays environment
variables (after loading .env) on top of them.

Environment variables:
    AGENT_SIGNAL_WINDOW_MINUTES   Observer look-back window.
    AGENT_BATCH_SIZE              Max signals per observation.
    AGENT_POLL_INTERVAL_SECONDS   Background polling period. 0 disables it.
    AGENT_USE_LLM                 "true" to classify clusters with the LLM.
    AGENT_LLM_MODEL               Model id for the LLM classifier.
    ESCALATION_WEBHOOK_URL        Where escalations are POSTed, if anywhere.
    AGENT_LOG_FILE                Rotating log file path.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_LLM_MODEL = "meta-llama/llama-3.3-70b-instruct"


class ObserverConfig(BaseModel):
    """Observer tunables.

    Attributes:
        signal_window_minutes: How far back each cycle looks.
        batch_size: Signals kept per observation after concatenation.
        anomaly_threshold: Reserved for z-score based anomaly detection.
            Not read by the current threshold heuristics.
        source_limit: Row cap per source query, newest first.
        remember_patterns: Record detected patterns in pattern memory.
    """

    signal_window_minutes: int = Field(default=15, gt=0)
    batch_size: int = Field(default=100, gt=0)
    anomaly_threshold: float = 2.0
    source_limit: int = Field(default=50, gt=0)
    remember_patterns: bool = True


class ReasonerConfig(BaseModel):
    """Reasoner tunables. Only read when use_llm is set."""

    use_llm: bool = False
    model_id: str = DEFAULT_LLM_MODEL
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)


class AgentConfig(BaseModel):
    observer: ObserverConfig = Field(default_factory=ObserverConfig)
    reasoner: ReasonerConfig = Field(default_factory=ReasonerConfig)
    poll_interval_seconds: float = Field(default=0.0, ge=0.0)
    escalation_webhook_url: str | None = None
    log_file: str = "self_healing_agent.log"


def load_config() -> AgentConfig:
    """Build an AgentConfig from the environment.

    Unset variables keep their defaults.

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value.
    """
    load_dotenv()

    observer: dict = {}
    reasoner: dict = {}
    agent: dict = {}

    if (value := os.getenv("AGENT_SIGNAL_WINDOW_MINUTES")) is not None:
        observer["signal_window_minutes"] = value
    if (value := os.getenv("AGENT_BATCH_SIZE")) is not None:
        observer["batch_size"] = value
    if (value := os.getenv("AGENT_USE_LLM")) is not None:
        reasoner["use_llm"] = value
    if (value := os.getenv("AGENT_LLM_MODEL")) is not None:
        reasoner["model_id"] = value
    if (value := os.getenv("AGENT_POLL_INTERVAL_SECONDS")) is not None:
        agent["poll_interval_seconds"] = value
    if value := os.getenv("ESCALATION_WEBHOOK_URL"):
        agent["escalation_webhook_url"] = value
    if value := os.getenv("AGENT_LOG_FILE"):
        agent["log_file"] = value

    return AgentConfig(
        observer=ObserverConfig.model_validate(observer),
        reasoner=ReasonerConfig.model_validate(reasoner),
        **agent,
    )
