"""LLM cluster classifier: classifies clusters with a text-generation oracle.

Sends the cluster's signals (at most MAX_PROMPT_SIGNALS of them) and its
pattern to any LLMClient and parses the JSON answer into a ClusterAnalysis.
Used instead of the deterministic rules when ReasonerConfig.use_llm is set.
"""

import logging
import pathlib

from core.config import ReasonerConfig
from llm.base import LLMClient
from llm.openrouter import OpenRouterClient
from reasoning.classifier import ClusterClassifier, RuleBasedClassifier
from reasoning.clustering import SignalCluster
from schemas.reasoning import ClusterAnalysis
from utils.parse import LLMParseError, parse_llm_json

logger = logging.getLogger(__name__)

_PROMPT_FILE = pathlib.Path(__file__).parent / "prompts" / "cluster_classifier.txt"
MAX_PROMPT_SIGNALS = 20


class LLMClusterClassifier(ClusterClassifier):
    """Classifies a cluster by asking an LLM.

    Parse failures are not swallowed here. LLMParseError propagates to the
    Reasoner, which records the cluster as a failed step.

    Attributes:
        llm: The client the prompt is sent to.
        model_id: Recorded as model_used on reasoning steps.
    """

    def __init__(self, llm: LLMClient, model_id: str | None = None) -> None:
        self.llm = llm
        self.model_id = model_id or llm.model
        self._system_prompt = _PROMPT_FILE.read_text()

    async def classify(self, cluster: SignalCluster) -> ClusterAnalysis:
        raw = await self.llm.complete(system=self._system_prompt, user=build_cluster_context(cluster))
        try:
            analysis = parse_llm_json(raw, ClusterAnalysis)
        except LLMParseError as exc:
            logger.error("Failed to parse LLM classification: %s\nRaw: %s", exc, exc.raw)
            raise
        return analysis.model_copy(update={"tokens_used": self.llm.last_tokens_used})


def build_cluster_context(cluster: SignalCluster) -> str:
    """Render a cluster as the user turn of the classification prompt."""
    lines = ["## Signals", ""]

    for signal in cluster.signals[:MAX_PROMPT_SIGNALS]:
        lines.append(f"- [{signal.type.value}] {signal.message}")
        lines.append(f"  Merchant: {signal.merchant_id or 'Unknown'}")
        lines.append(f"  Severity: {signal.severity.value}")
        lines.append(f"  Time: {signal.timestamp.isoformat()}")
        lines.append("")

    if len(cluster.signals) > MAX_PROMPT_SIGNALS:
        lines.append(f"({len(cluster.signals) - MAX_PROMPT_SIGNALS} more signals omitted)")
        lines.append("")

    if cluster.pattern is not None:
        lines.append("## Detected Pattern")
        lines.append(f"Type: {cluster.pattern.pattern_type}")
        lines.append(f"Description: {cluster.pattern.description}")
        lines.append("")

    return "\n".join(lines)


def classifier_from_config(config: ReasonerConfig) -> ClusterClassifier:
    """Pick the classifier the configuration asks for.

    Raises:
        KeyError: If use_llm is set but OPENROUTER_API_KEY is not.
    """
    if not config.use_llm:
        return RuleBasedClassifier()
    client = OpenRouterClient(config.model_id, max_tokens=config.max_tokens, temperature=config.temperature)
    logger.info("Classifying clusters with %s.", config.model_id)
    return LLMClusterClassifier(client, model_id=config.model_id)
