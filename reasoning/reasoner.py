"""Reasoner: the Reason phase of the agent loop.

Turns one Observation into ReasoningResults, one per signal cluster:

1. Log the initial analysis step
2. Cluster the signals (see reasoning.clustering)
3. Classify each cluster with the configured ClusterClassifier and build its
   evidence chain and affected scope
4. Persist the whole reasoning log in one batch

Every step is appended to an ordered reasoning log with increasing step
numbers. Each ReasoningResult carries the log up to and including its own
analysis step, so the audit trail explains how that result was reached.

A cluster whose classification raises is recorded as a failed step with
confidence 0 and skipped; the remaining clusters still run. Persisting the
log is advisory: the outcome is exposed as last_persist and never raised.
"""

import logging
import time

from core.context import AgentContext
from reasoning.classifier import ClusterClassifier, RuleBasedClassifier
from reasoning.clustering import SignalCluster, cluster_signals
from schemas.incident import Evidence
from schemas.observation import Observation
from schemas.reasoning import AffectedScope, ReasoningResult, ReasoningStep
from store.base import PERSIST_OK, REASONING_LOGS, PersistResult

logger = logging.getLogger(__name__)


class Reasoner:
    """Clusters and classifies observed signals.

    Attributes:
        context: Store and state of the owning agent.
        classifier: Produces the ClusterAnalysis for each cluster.
        last_persist: Outcome of the most recent reasoning-log write. None
            until reason() has persisted anything.
    """

    def __init__(self, context: AgentContext, classifier: ClusterClassifier | None = None) -> None:
        self.context = context
        self.classifier = classifier or RuleBasedClassifier()
        self.last_persist: PersistResult | None = None

    async def reason(self, observation: Observation) -> list[ReasoningResult]:
        """Classify every cluster in observation.

        Returns an empty list, without classifying or persisting anything,
        when the observation has no signals and no anomalies.
        """
        if observation.is_empty:
            return []

        log: list[ReasoningStep] = []
        results: list[ReasoningResult] = []

        log.append(ReasoningStep(
            step_number=len(log) + 1,
            thought=(
                f"Analyzing {len(observation.signals)} signals "
                f"and {len(observation.patterns_detected)} patterns"
            ),
            evidence={
                "signal_count": len(observation.signals),
                "pattern_count": len(observation.patterns_detected),
            },
        ))

        clusters = cluster_signals(observation.signals, observation.patterns_detected)
        log.append(ReasoningStep(
            step_number=len(log) + 1,
            thought=f"Identified {len(clusters)} distinct issue clusters",
            evidence={"clusters": [{"size": len(c.signals), "types": c.types} for c in clusters]},
        ))
        logger.info("[REASON] %d signals grouped into %d clusters.", len(observation.signals), len(clusters))

        for cluster in clusters:
            result = await self._analyze(cluster, log)
            if result is not None:
                results.append(result)

        self.last_persist = await self._persist(log)
        self.context.state.set_reasoning(results)
        return results

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _analyze(self, cluster: SignalCluster, log: list[ReasoningStep]) -> ReasoningResult | None:
        """Classify one cluster, appending its step to log.

        Returns None if the classifier raised.
        """
        step_number = len(log) + 1
        start = time.perf_counter()

        try:
            analysis = await self.classifier.classify(cluster)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error("[REASON] Error analyzing cluster of %d signals: %s", len(cluster.signals), exc)
            log.append(ReasoningStep(
                step_number=step_number,
                thought=f"Error analyzing cluster: {exc}",
                evidence={"error": repr(exc)},
                conclusion="Analysis failed",
                confidence=0.0,
                duration_ms=duration_ms,
            ))
            return None

        duration_ms = (time.perf_counter() - start) * 1000
        log.append(ReasoningStep(
            step_number=step_number,
            thought=f"Analyzed cluster: {analysis.classification.value}",
            evidence={
                "cluster_size": len(cluster.signals),
                "classification": analysis.classification.value,
                "confidence": analysis.confidence,
            },
            conclusion=analysis.root_cause_hypothesis,
            confidence=analysis.confidence,
            tokens_used=analysis.tokens_used,
            model_used=self.classifier.model_id,
            duration_ms=duration_ms,
        ))
        logger.debug(
            "[REASON] Cluster of %d classified %s @ %.2f.",
            len(cluster.signals),
            analysis.classification.value,
            analysis.confidence,
        )

        return ReasoningResult(
            classification=analysis.classification,
            root_cause_hypothesis=analysis.root_cause_hypothesis,
            confidence=analysis.confidence,
            evidence_chain=[
                Evidence(
                    type=s.type.value,
                    source_id=s.id,
                    description=s.message,
                    timestamp=s.timestamp,
                    data=s.data,
                )
                for s in cluster.signals
            ],
            affected_scope=AffectedScope(
                merchants=cluster.merchants,
                features=analysis.affected_features,
                estimated_impact=analysis.impact_assessment,
            ),
            reasoning_steps=list(log),
        )

    async def _persist(self, log: list[ReasoningStep]) -> PersistResult:
        try:
            await self.context.store.insert(REASONING_LOGS, [step.model_dump() for step in log])
        except Exception as exc:
            logger.error("Failed to save reasoning logs: %s", exc)
            return PersistResult.failed(exc)
        return PERSIST_OK
