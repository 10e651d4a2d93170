"""LLM client and response parsing tests.

Tests for the LLMClient abstraction, the OpenRouterClient implementation and
the JSON parser the LLM cluster classifier relies on.

TestLLMClientAbstract  -- no API key needed, runs in CI
TestOpenRouterClient   -- the real API call tests are skipped if OPENROUTER_API_KEY
                          is not set in the environment or .env file
TestParseLLMJson       -- fenced, chatty and malformed responses
"""

import os
from types import SimpleNamespace

import pytest

from llm.base import LLMClient
from llm.openrouter import OpenRouterClient
from reasoning.clustering import SignalCluster
from reasoning.llm_classifier import LLMClusterClassifier
from schemas.reasoning import ClusterAnalysis
from schemas.signal import Signal
from utils.clock import utcnow
from utils.parse import LLMParseError, parse_llm_json


# ── LLMClient (abstract) ──────────────────────────────────────────────────────

class TestLLMClientAbstract:
    def test_cannot_instantiate_directly(self):
        """LLMClient is abstract, so instantiating it directly must raise."""
        with pytest.raises(TypeError, match="abstract"):
            LLMClient()

    def test_subclass_without_complete_raises(self):
        """A subclass that skips implementing complete() must also raise."""
        class IncompleteClient(LLMClient):
            pass

        with pytest.raises(TypeError, match="abstract"):
            IncompleteClient()

    def test_subclass_with_complete_is_instantiable(self):
        class ConcreteClient(LLMClient):
            async def complete(self, system: str, user: str) -> str:
                return "ok"

        client = ConcreteClient()
        assert isinstance(client, LLMClient)
        assert client.last_tokens_used == 0


# ── OpenRouterClient ──────────────────────────────────────────────────────────

class TestOpenRouterClient:
    def test_raises_immediately_if_api_key_missing(self, monkeypatch):
        """Missing key must raise KeyError at construction, not at first call."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(KeyError):
            OpenRouterClient(model="meta-llama/llama-3.3-70b-instruct")

    def test_is_subclass_of_llm_client(self):
        assert issubclass(OpenRouterClient, LLMClient)

    def test_keeps_generation_settings(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
        client = OpenRouterClient("some/model", max_tokens=512, temperature=0.1)
        assert client.model == "some/model"
        assert client.max_tokens == 512
        assert client.temperature == 0.1

    async def test_records_tokens_from_usage(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
        client = OpenRouterClient("some/model")
        sent = {}

        async def fake_create(**kwargs):
            sent.update(kwargs)
            return SimpleNamespace(
                usage=SimpleNamespace(total_tokens=321),
                choices=[SimpleNamespace(message=SimpleNamespace(content="pong"))],
            )

        monkeypatch.setattr(client.client.chat.completions, "create", fake_create)

        assert await client.complete(system="sys", user="ping") == "pong"
        assert client.last_tokens_used == 321
        assert sent["model"] == "some/model"
        assert sent["messages"][0] == {"role": "system", "content": "sys"}
        assert sent["response_format"] == {"type": "json_object"}

    async def test_json_mode_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
        client = OpenRouterClient("some/model", json_mode=False)
        sent = {}

        async def fake_create(**kwargs):
            sent.update(kwargs)
            return SimpleNamespace(
                usage=None,
                choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))],
            )

        monkeypatch.setattr(client.client.chat.completions, "create", fake_create)

        await client.complete(system="sys", user="ping")

        assert "response_format" not in sent

    async def test_missing_usage_counts_zero_tokens(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
        client = OpenRouterClient("some/model")

        async def fake_create(**kwargs):
            return SimpleNamespace(
                usage=None,
                choices=[SimpleNamespace(message=SimpleNamespace(content=None))],
            )

        monkeypatch.setattr(client.client.chat.completions, "create", fake_create)

        assert await client.complete(system="sys", user="ping") == ""
        assert client.last_tokens_used == 0

    @pytest.mark.skipif(
        not os.getenv("OPENROUTER_API_KEY"),
        reason="OPENROUTER_API_KEY not set, skipping live API call",
    )
    @pytest.mark.live
    async def test_real_api_call_returns_string(self):
        """Make a real call to OpenRouter and verify we get a non-empty string back."""
        client = OpenRouterClient(model="meta-llama/llama-3.3-70b-instruct")
        response = await client.complete(
            system="You are a test assistant. Reply with one word only, no punctuation.",
            user="Say the word pong.",
        )
        assert isinstance(response, str)
        assert len(response.strip()) > 0

    @pytest.mark.skipif(
        not os.getenv("OPENROUTER_API_KEY"),
        reason="OPENROUTER_API_KEY not set, skipping live API call",
    )
    @pytest.mark.live
    async def test_real_cluster_classification(self):
        """A live model must return a parseable classification for a payment cluster."""
        now = utcnow()
        cluster = SignalCluster(signals=[
            Signal(
                id=f"co-{i}",
                type="checkout_failure",
                source="checkout_sessions",
                merchant_id=f"m{i % 3}",
                severity="error",
                message="Checkout failed: Stripe API error: rate limit exceeded",
                data={"error_code": "rate_limit"},
                timestamp=now,
            )
            for i in range(6)
        ])
        classifier = LLMClusterClassifier(OpenRouterClient("meta-llama/llama-3.3-70b-instruct"))

        analysis = await classifier.classify(cluster)

        assert isinstance(analysis, ClusterAnalysis)
        assert 0.0 <= analysis.confidence <= 1.0


# ── parse_llm_json ────────────────────────────────────────────────────────────

_VALID = (
    '{"classification": "payment_issue", "root_cause_hypothesis": "Stripe keys rotated", '
    '"confidence": 0.8, "affected_features": ["Checkout"], "impact_assessment": "3 merchants"}'
)


class TestParseLLMJson:
    def test_plain_json(self):
        analysis = parse_llm_json(_VALID, ClusterAnalysis)
        assert analysis.classification.value == "payment_issue"
        assert analysis.affected_features == ["Checkout"]

    def test_markdown_fences_are_stripped(self):
        analysis = parse_llm_json(f"```json\n{_VALID}\n```", ClusterAnalysis)
        assert analysis.confidence == 0.8

    def test_leading_commentary_is_skipped(self):
        analysis = parse_llm_json(f"Here is my analysis:\n{_VALID}\nHope that helps.", ClusterAnalysis)
        assert analysis.root_cause_hypothesis == "Stripe keys rotated"

    def test_confidence_is_clamped(self):
        raw = _VALID.replace('"confidence": 0.8', '"confidence": 1.7')
        assert parse_llm_json(raw, ClusterAnalysis).confidence == 1.0

    def test_trailing_commentary_with_braces(self):
        raw = f"{_VALID}\nNote: ignore the {{placeholder}} fields."
        assert parse_llm_json(raw, ClusterAnalysis).confidence == 0.8

    def test_prose_label_is_normalized(self):
        raw = _VALID.replace('"payment_issue"', '"Payment Issue"')
        assert parse_llm_json(raw, ClusterAnalysis).classification.value == "payment_issue"

    def test_percentage_confidence(self):
        raw = _VALID.replace('"confidence": 0.8', '"confidence": "85%"')
        assert parse_llm_json(raw, ClusterAnalysis).confidence == 0.85

    def test_comma_separated_features(self):
        raw = _VALID.replace('["Checkout"]', '"Checkout, Payments"')
        assert parse_llm_json(raw, ClusterAnalysis).affected_features == ["Checkout", "Payments"]

    def test_no_json_raises_with_raw(self):
        with pytest.raises(LLMParseError) as info:
            parse_llm_json("I cannot classify this.", ClusterAnalysis)
        assert info.value.raw == "I cannot classify this."

    def test_unknown_classification_raises(self):
        raw = _VALID.replace("payment_issue", "cosmic_rays")
        with pytest.raises(LLMParseError, match="does not match schema"):
            parse_llm_json(raw, ClusterAnalysis)
