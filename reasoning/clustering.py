"""Signal clustering.

Groups an observation's signals into the clusters the classifier looks at:

1. One cluster per detected pattern, holding the signals that match the
   pattern's clustering key (merchant_id, then endpoint, then
   affected_merchants, whichever the signature carries first)
2. One residual cluster holding the error and critical signals no pattern
   claimed

A signal belongs to at most one cluster. Patterns claim signals broadest
first: endpoint-wide failures, then checkout spikes, then single-merchant
patterns, with detection order breaking ties. An outage on one endpoint
therefore stays one platform cluster even when every affected merchant also
crossed the repeated-errors threshold. Patterns left with no signals produce
no cluster.
"""

from dataclasses import dataclass

from schemas.observation import Pattern
from schemas.signal import Signal
from signals.patterns import (
    CHECKOUT_FAILURE_SPIKE,
    ENDPOINT_WIDESPREAD_FAILURE,
    REPEATED_MERCHANT_ERRORS,
)

# Lower claims first. Unknown pattern types claim after the known ones.
CLAIM_ORDER = {
    ENDPOINT_WIDESPREAD_FAILURE: 0,
    CHECKOUT_FAILURE_SPIKE: 1,
    REPEATED_MERCHANT_ERRORS: 2,
}


@dataclass
class SignalCluster:
    """Signals classified together in one pass.

    Attributes:
        signals: Cluster members, in observation order.
        pattern: The pattern that formed the cluster. None for the residual
            cluster.
    """

    signals: list[Signal]
    pattern: Pattern | None = None

    @property
    def types(self) -> list[str]:
        """Distinct signal types, first-seen order."""
        return list(dict.fromkeys(s.type.value for s in self.signals))

    @property
    def merchants(self) -> list[str]:
        """Distinct non-null merchant ids, first-seen order."""
        return list(dict.fromkeys(s.merchant_id for s in self.signals if s.merchant_id))


def cluster_signals(signals: list[Signal], patterns: list[Pattern]) -> list[SignalCluster]:
    """Partition signals into pattern clusters plus one residual cluster."""
    clusters: list[SignalCluster] = []
    claimed: set[str] = set()

    ranked = sorted(patterns, key=lambda p: CLAIM_ORDER.get(p.pattern_type, len(CLAIM_ORDER)))
    for pattern in ranked:
        members = [
            s for s in signals
            if s.id not in claimed and _matches(pattern.pattern_signature, s)
        ]
        if not members:
            continue
        claimed.update(s.id for s in members)
        clusters.append(SignalCluster(signals=members, pattern=pattern))

    residual = [s for s in signals if s.id not in claimed and s.is_error]
    if residual:
        clusters.append(SignalCluster(signals=residual))

    return clusters


def _matches(signature: dict, signal: Signal) -> bool:
    if signature.get("merchant_id"):
        return signal.merchant_id == signature["merchant_id"]
    if signature.get("endpoint"):
        return signal.data.get("endpoint") == signature["endpoint"]
    merchants = signature.get("affected_merchants")
    if isinstance(merchants, list):
        return bool(signal.merchant_id) and signal.merchant_id in merchants
    return False
