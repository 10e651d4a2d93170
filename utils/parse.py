"""LLM response parsing.

Turns the free-form text a model returns for a cluster classification into a
validated Pydantic model. Models rarely answer with bare JSON, so the parser
tolerates what they actually send back:

- markdown fences around the object (```json ... ```)
- commentary before or after it, including stray braces in that commentary
- classification labels written as prose ("Payment Issue", "payment-issue")
- confidence as a string or percentage ("0.8", "85%"), or outside [0.0, 1.0]
- affected_features as one comma-separated string instead of a list
"""

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)

_FENCE = re.compile(r"```(?:json)?")
_decoder = json.JSONDecoder()


class LLMParseError(Exception):
    """Raised when an LLM response cannot be parsed into the expected schema.

    Attributes:
        raw: The unmodified response, for logging.
    """

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


def parse_llm_json(response: str, schema: type[M]) -> M:
    """Parse an LLM response into a validated instance of schema.

    The first decodable JSON object in the response wins. Known fields are
    normalized before validation (see module docstring).

    Raises:
        LLMParseError: If no JSON object is found or it does not match
            schema. The .raw attribute holds the original response.
    """
    data = _first_object(_FENCE.sub("", response))
    if data is None:
        raise LLMParseError(
            f"No valid JSON found in LLM response for schema {schema.__name__}",
            raw=response,
        )

    _normalize(data)

    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise LLMParseError(
            f"LLM response does not match schema {schema.__name__}: {exc}",
            raw=response,
        ) from exc


# ── Private helpers ────────────────────────────────────────────────────────────

def _first_object(text: str) -> dict | None:
    """Decode the first JSON object starting at any '{' in text."""
    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def _normalize(data: dict) -> None:
    label = data.get("classification")
    if isinstance(label, str):
        data["classification"] = re.sub(r"[\s\-]+", "_", label.strip().lower())

    if "confidence" in data:
        confidence = _to_confidence(data["confidence"])
        if confidence is not None:
            data["confidence"] = confidence

    features = data.get("affected_features")
    if isinstance(features, str):
        data["affected_features"] = [f.strip() for f in features.split(",") if f.strip()]


def _to_confidence(value) -> float | None:
    """Coerce a confidence to a float in [0.0, 1.0]. None if it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        percent = text.endswith("%")
        try:
            value = float(text.rstrip("%"))
        except ValueError:
            return None
        if percent:
            value /= 100
    if not isinstance(value, (int, float)):
        return None
    return max(0.0, min(1.0, float(value)))
