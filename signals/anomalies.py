"""Anomaly detector: threshold flags over one signal batch.

Detects:
- Critical errors: any critical signal (severity critical)
- Error volume spike: >= 10 error-severity signals (severity high)
- Widespread impact: >= 5 distinct merchants across all signals (severity high)

Each heuristic is independent; one batch can raise all three.
"""

from schemas.incident import IncidentSeverity
from schemas.observation import Anomaly
from schemas.signal import Signal, SignalSeverity


class AnomalyDetector:
    """Flag batches that cross fixed severity, volume or breadth thresholds."""

    ERROR_VOLUME_THRESHOLD = 10
    WIDESPREAD_MERCHANT_THRESHOLD = 5

    def __init__(self, signal_window_minutes: int = 15) -> None:
        self.signal_window_minutes = signal_window_minutes

    def detect(self, signals: list[Signal]) -> list[Anomaly]:
        anomalies: list[Anomaly] = []

        critical = [s for s in signals if s.severity == SignalSeverity.CRITICAL]
        errors = [s for s in signals if s.severity == SignalSeverity.ERROR]
        merchants = _merchants(signals)

        if critical:
            anomalies.append(Anomaly(
                type="critical_errors",
                description=f"{len(critical)} critical errors detected",
                affected_merchants=_merchants(critical),
                severity=IncidentSeverity.CRITICAL,
            ))

        if len(errors) >= self.ERROR_VOLUME_THRESHOLD:
            anomalies.append(Anomaly(
                type="error_volume_spike",
                description=(
                    f"Unusually high error volume: {len(errors)} errors "
                    f"in {self.signal_window_minutes} minutes"
                ),
                affected_merchants=_merchants(errors),
                severity=IncidentSeverity.HIGH,
            ))

        if len(merchants) >= self.WIDESPREAD_MERCHANT_THRESHOLD:
            anomalies.append(Anomaly(
                type="widespread_impact",
                description=f"Issues affecting {len(merchants)} merchants simultaneously",
                affected_merchants=merchants,
                severity=IncidentSeverity.HIGH,
            ))

        return anomalies


def _merchants(signals: list[Signal]) -> list[str]:
    return list(dict.fromkeys(s.merchant_id for s in signals if s.merchant_id))
