"""Cluster classifiers.

A classifier turns one SignalCluster into a ClusterAnalysis: an incident
classification, a root-cause hypothesis, a confidence and the affected
features. The Reasoner depends only on the ClusterClassifier interface, so
the deterministic rules below and the LLM oracle in llm_classifier.py are
interchangeable.
"""

import json
from abc import ABC, abstractmethod

from reasoning.clustering import SignalCluster
from schemas.incident import IncidentType
from schemas.reasoning import ClusterAnalysis
from schemas.signal import SignalType
from signals.patterns import (
    CHECKOUT_FAILURE_SPIKE,
    ENDPOINT_WIDESPREAD_FAILURE,
    REPEATED_MERCHANT_ERRORS,
)

MIGRATION_KEYWORDS = ("migration", "headless", "api key", "webhook", "used to work")


class ClusterClassifier(ABC):
    """Abstract base class for cluster classifiers.

    Attributes:
        model_id: Recorded as model_used on the reasoning step.
    """

    model_id: str

    @abstractmethod
    async def classify(self, cluster: SignalCluster) -> ClusterAnalysis:
        """Classify one cluster.

        Raises:
            Exception: Anything. The Reasoner records the cluster as a failed
                step and carries on with the next one.
        """
        ...


class RuleBasedClassifier(ClusterClassifier):
    """Deterministic classification by pattern type, then by signal types.

    Precedence:
        1. The cluster's pattern, if it has one
        2. Webhook failures (several merchants vs one)
        3. Checkout failures
        4. Tickets mentioning migration keywords
        5. documentation_gap at low confidence

    No LLM involved. Same input always produces the same output.
    """

    model_id = "rules"

    async def classify(self, cluster: SignalCluster) -> ClusterAnalysis:
        return self.analyze(cluster)

    def analyze(self, cluster: SignalCluster) -> ClusterAnalysis:
        from_pattern = self._by_pattern(cluster)
        if from_pattern is not None:
            return from_pattern

        types = cluster.types

        if SignalType.WEBHOOK_FAILURE.value in types:
            merchants = cluster.merchants
            if len(merchants) > 1:
                return ClusterAnalysis(
                    classification=IncidentType.PLATFORM_REGRESSION,
                    root_cause_hypothesis=(
                        "Webhook delivery system may have an issue affecting multiple merchants."
                    ),
                    confidence=0.7,
                    affected_features=["Webhooks", "Order Processing"],
                    impact_assessment=f"{len(merchants)} merchants affected",
                )
            return ClusterAnalysis(
                classification=IncidentType.CONFIG_ERROR,
                root_cause_hypothesis=(
                    "Webhook endpoint may be misconfigured or unreachable for this merchant."
                ),
                confidence=0.75,
                affected_features=["Webhooks"],
                impact_assessment="Single merchant affected",
            )

        if SignalType.CHECKOUT_FAILURE.value in types:
            return ClusterAnalysis(
                classification=IncidentType.PAYMENT_ISSUE,
                root_cause_hypothesis=(
                    "Checkout failures detected, could be Stripe integration or cart processing issue."
                ),
                confidence=0.65,
                affected_features=["Checkout", "Payments"],
                impact_assessment="Revenue at risk",
            )

        if SignalType.TICKET.value in types and _mentions_migration(cluster):
            return ClusterAnalysis(
                classification=IncidentType.MIGRATION_MISSTEP,
                root_cause_hypothesis=(
                    "Issues appear related to the migration process. "
                    "Merchant may have missed configuration steps."
                ),
                confidence=0.7,
                affected_features=["Migration", "Configuration"],
                impact_assessment="Migration-related issues",
            )

        return ClusterAnalysis(
            classification=IncidentType.DOCUMENTATION_GAP,
            root_cause_hypothesis=(
                "Unable to determine specific root cause. May require manual investigation."
            ),
            confidence=0.3,
            affected_features=types,
            impact_assessment="Requires investigation",
        )

    # ── Private ───────────────────────────────────────────────────────────────

    def _by_pattern(self, cluster: SignalCluster) -> ClusterAnalysis | None:
        pattern = cluster.pattern
        if pattern is None:
            return None
        signature = pattern.pattern_signature

        if pattern.pattern_type == ENDPOINT_WIDESPREAD_FAILURE:
            merchants = signature.get("affected_merchants") or []
            return ClusterAnalysis(
                classification=IncidentType.PLATFORM_REGRESSION,
                root_cause_hypothesis=(
                    f"API endpoint {signature.get('endpoint')} is experiencing widespread "
                    "failures, likely due to a recent code change or infrastructure issue."
                ),
                confidence=0.85,
                affected_features=["API", "Checkout"],
                impact_assessment=f"{len(merchants) or 'Multiple'} merchants affected",
            )

        if pattern.pattern_type == CHECKOUT_FAILURE_SPIKE:
            return ClusterAnalysis(
                classification=IncidentType.PAYMENT_ISSUE,
                root_cause_hypothesis=(
                    "Checkout failures are spiking, potentially due to Stripe configuration "
                    "issues or payment processing errors."
                ),
                confidence=0.75,
                affected_features=["Checkout", "Payments"],
                impact_assessment="Revenue-impacting issue affecting multiple merchants",
            )

        if pattern.pattern_type == REPEATED_MERCHANT_ERRORS:
            return ClusterAnalysis(
                classification=IncidentType.CONFIG_ERROR,
                root_cause_hypothesis=(
                    "Single merchant experiencing repeated errors, likely due to "
                    "misconfiguration during migration or missing setup steps."
                ),
                confidence=0.8,
                affected_features=[t.replace("_", " ", 1) for t in cluster.types],
                impact_assessment="Single merchant affected",
            )

        return None


def _mentions_migration(cluster: SignalCluster) -> bool:
    for signal in cluster.signals:
        text = (signal.message + " " + json.dumps(signal.data, default=str)).lower()
        if any(keyword in text for keyword in MIGRATION_KEYWORDS):
            return True
    return False
