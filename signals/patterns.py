"""Pattern detector: recurring structures within one signal batch.

Detects:
- Repeated merchant errors: one merchant with >= 3 signals, >= 3 of them
  error or critical
- Endpoint widespread failure: one API endpoint failing for >= 2 merchants
- Checkout failure spike: >= 5 checkout failures in the batch

Every pattern's signature carries exactly one clustering key (merchant_id,
endpoint or affected_merchants), which the Reasoner uses to pull the
pattern's signals back out of the batch.

No LLM involved. Same input always produces the same output.
"""

from collections import defaultdict

from schemas.incident import IncidentType
from schemas.observation import Pattern
from schemas.signal import Signal, SignalType

REPEATED_MERCHANT_ERRORS = "repeated_merchant_errors"
ENDPOINT_WIDESPREAD_FAILURE = "endpoint_widespread_failure"
CHECKOUT_FAILURE_SPIKE = "checkout_failure_spike"


class PatternDetector:
    """Find recurring patterns in a list of signals."""

    MERCHANT_MIN_SIGNALS = 3
    MERCHANT_MIN_ERRORS = 3
    ENDPOINT_MIN_MERCHANTS = 2
    ENDPOINT_CONFIDENCE = 0.7
    CHECKOUT_SPIKE_MIN = 5

    def __init__(self, signal_window_minutes: int = 15) -> None:
        self.signal_window_minutes = signal_window_minutes

    def detect(self, signals: list[Signal]) -> list[Pattern]:
        patterns: list[Pattern] = []

        patterns.extend(self._repeated_merchant_errors(signals))
        patterns.extend(self._endpoint_failures(signals))
        patterns.extend(self._checkout_spike(signals))

        return patterns

    # ── Private ───────────────────────────────────────────────────────────────

    def _repeated_merchant_errors(self, signals: list[Signal]) -> list[Pattern]:
        by_merchant: dict[str, list[Signal]] = defaultdict(list)
        for s in signals:
            if s.merchant_id:
                by_merchant[s.merchant_id].append(s)

        patterns = []
        for merchant_id, merchant_signals in by_merchant.items():
            if len(merchant_signals) < self.MERCHANT_MIN_SIGNALS:
                continue
            errors = [s for s in merchant_signals if s.is_error]
            if len(errors) < self.MERCHANT_MIN_ERRORS:
                continue

            patterns.append(Pattern(
                id=f"pattern-merchant-{merchant_id}",
                pattern_type=REPEATED_MERCHANT_ERRORS,
                pattern_signature={
                    "merchant_id": merchant_id,
                    "error_count": len(errors),
                    "error_types": _unique(s.type.value for s in errors),
                },
                description=(
                    f"Merchant {merchant_id} has {len(errors)} errors "
                    f"in the last {self.signal_window_minutes} minutes"
                ),
            ))
        return patterns

    def _endpoint_failures(self, signals: list[Signal]) -> list[Pattern]:
        by_endpoint: dict[str, list[Signal]] = defaultdict(list)
        for s in signals:
            endpoint = s.data.get("endpoint")
            if s.type == SignalType.API_ERROR and endpoint:
                by_endpoint[endpoint].append(s)

        patterns = []
        for endpoint, endpoint_signals in by_endpoint.items():
            merchants = _unique(s.merchant_id for s in endpoint_signals if s.merchant_id)
            if len(merchants) < self.ENDPOINT_MIN_MERCHANTS:
                continue

            patterns.append(Pattern(
                id=f"pattern-endpoint-{endpoint}",
                pattern_type=ENDPOINT_WIDESPREAD_FAILURE,
                pattern_signature={
                    "endpoint": endpoint,
                    "affected_merchants": merchants,
                    "failure_count": len(endpoint_signals),
                },
                description=f"Endpoint {endpoint} is failing for {len(merchants)} merchants",
                associated_root_cause=IncidentType.PLATFORM_REGRESSION.value,
                confidence=self.ENDPOINT_CONFIDENCE,
            ))
        return patterns

    def _checkout_spike(self, signals: list[Signal]) -> list[Pattern]:
        failures = [s for s in signals if s.type == SignalType.CHECKOUT_FAILURE]
        if len(failures) < self.CHECKOUT_SPIKE_MIN:
            return []

        merchants = _unique(s.merchant_id for s in failures if s.merchant_id)
        return [Pattern(
            id="pattern-checkout-spike",
            pattern_type=CHECKOUT_FAILURE_SPIKE,
            pattern_signature={
                "failure_count": len(failures),
                "affected_merchants": merchants,
                "error_codes": _unique(s.data.get("error_code") for s in failures),
            },
            description=(
                f"Checkout failure spike: {len(failures)} failures "
                f"across {len(merchants)} merchants"
            ),
        )]


def _unique(values) -> list:
    """Deduplicate, keeping first-seen order."""
    return list(dict.fromkeys(values))
