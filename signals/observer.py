"""Observer: the Observe phase of the agent loop.

Polls the four operational streams over a sliding window and turns what it
finds into one Observation:

1. Query all collectors concurrently (tickets, API errors, webhook
   failures, checkout failures), each capped and newest first
2. Concatenate and truncate to the configured batch size
3. Detect patterns and anomalies over the batch
4. Record the patterns in pattern memory (when enabled)
5. Build the summary, store the Observation in AgentState and feed the
   signal buffer

A source that fails to answer contributes nothing for this cycle; partial
observations are better than no observation. Pattern-memory failures are
logged and never affect the Observation beyond its occurrence counts.
"""

import asyncio
import logging
from collections import Counter
from datetime import timedelta

from core.context import AgentContext
from schemas.incident import IncidentSeverity
from schemas.observation import Anomaly, Observation, Pattern
from schemas.signal import Signal
from signals.anomalies import AnomalyDetector
from signals.collectors import DEFAULT_COLLECTORS, SignalCollector
from signals.patterns import CHECKOUT_FAILURE_SPIKE, PatternDetector
from utils.clock import utcnow

logger = logging.getLogger(__name__)

EMPTY_SUMMARY = "No new signals detected in the observation window."
PATTERN_MEMORY_LOOKUP_LIMIT = 50


class Observer:
    """Collects signals and produces Observations.

    Attributes:
        context: Store, state and configuration of the owning agent.
        collectors: Sources queried on every cycle.
    """

    def __init__(
        self,
        context: AgentContext,
        collectors: tuple[SignalCollector, ...] = DEFAULT_COLLECTORS,
    ) -> None:
        self.context = context
        self.collectors = collectors
        config = context.config.observer
        self._patterns = PatternDetector(config.signal_window_minutes)
        self._anomalies = AnomalyDetector(config.signal_window_minutes)

    async def observe(self) -> Observation:
        """Run one observation over the configured window.

        Never raises for source failures. An empty window produces an
        Observation with no signals, patterns or anomalies.
        """
        config = self.context.config.observer
        window_start = utcnow() - timedelta(minutes=config.signal_window_minutes)

        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self._collect_safely(c, window_start), name=c.name)
                for c in self.collectors
            ]

        signals = [s for t in tasks for s in t.result()][: config.batch_size]

        patterns = self._patterns.detect(signals)
        if config.remember_patterns and patterns:
            patterns = await self._remember(patterns)
        anomalies = self._anomalies.detect(signals)

        observation = Observation(
            signals=signals,
            patterns_detected=patterns,
            anomalies=anomalies,
            summary=build_summary(signals, patterns, anomalies),
        )
        logger.info("[OBSERVE] %s", observation.summary)

        self.context.state.set_observation(observation)
        self.context.state.add_signals(signals)
        return observation

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _collect_safely(self, collector: SignalCollector, since) -> list[Signal]:
        """Run one collector, treating any failure as an empty source."""
        try:
            signals = await collector.collect(
                self.context.store, since, self.context.config.observer.source_limit
            )
        except Exception as exc:
            logger.error("Collector %s failed; skipping. Error: %s", collector.name, exc)
            return []
        logger.debug("Collector %s produced %d signals.", collector.name, len(signals))
        return signals

    async def _remember(self, patterns: list[Pattern]) -> list[Pattern]:
        """Store new patterns and bump the ones pattern memory already knows.

        Returns the patterns with occurrences taken from pattern memory.
        """
        state = self.context.state
        remembered = []
        for pattern in patterns:
            try:
                known = await state.find_similar_patterns(
                    pattern.pattern_type, limit=PATTERN_MEMORY_LOOKUP_LIMIT
                )
                match = next((k for k in known if _same_pattern(k, pattern)), None)
                if match is None:
                    await state.store_pattern(
                        pattern.pattern_type,
                        pattern.pattern_signature,
                        pattern.description or "",
                        pattern.associated_root_cause,
                        pattern.confidence,
                    )
                else:
                    updated = await state.increment_pattern(match.id)
                    if updated is not None:
                        pattern = pattern.model_copy(update={"occurrences": updated.occurrences})
            except Exception as exc:
                logger.warning("Pattern memory update failed for %s. Error: %s", pattern.id, exc)
            remembered.append(pattern)
        return remembered


def build_summary(signals: list[Signal], patterns: list[Pattern], anomalies: list[Anomaly]) -> str:
    """One-line digest, e.g.

        "Observed 7 signals (5 api errors, 2 tickets). Detected 1 pattern(s).
         ⚠ 1 critical anomaly(ies) require attention."
    """
    if not signals:
        return EMPTY_SUMMARY

    counts = Counter(s.type.value for s in signals)
    breakdown = ", ".join(
        f"{n} {signal_type.replace('_', ' ', 1)}s" for signal_type, n in counts.items()
    )
    parts = [f"Observed {len(signals)} signals ({breakdown})"]

    if patterns:
        parts.append(f"Detected {len(patterns)} pattern(s)")

    critical = sum(1 for a in anomalies if a.severity == IncidentSeverity.CRITICAL)
    if critical:
        parts.append(f"⚠ {critical} critical anomaly(ies) require attention")

    return ". ".join(parts) + "."


def _same_pattern(known: Pattern, detected: Pattern) -> bool:
    """Whether a pattern-memory row describes the detected pattern.

    Merchant and endpoint patterns match on their key. Checkout spikes have
    no key, so any remembered spike matches.
    """
    if detected.pattern_type == CHECKOUT_FAILURE_SPIKE:
        return True
    for key in ("merchant_id", "endpoint"):
        if key in detected.pattern_signature:
            return known.pattern_signature.get(key) == detected.pattern_signature[key]
    return False
