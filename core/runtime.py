"""Agent runtime: the top-level loop orchestrator.

Agent is the single entry point for running the self-healing loop. Build it
from an AgentContext, then call run_once() on demand or start() to poll.

Pipeline order inside run_once():
    1. Observe  collect signals, patterns and anomalies
    2. Reason   cluster and classify (skipped for an empty observation)
    3. Decide   pick actions per reasoning result
    4. Act      persist, execute or queue every action
    5. Return AgentLoopResult

Only one cycle runs at a time per agent. is_processing is set for the whole
cycle and cleared in a finally block, so a failed cycle never wedges the
agent. Errors that escape the components' own isolation are logged and
re-raised to the caller.
"""

import asyncio
import logging
import time
from datetime import datetime

from pydantic import BaseModel

from actions.actor import Actor
from core.context import AgentContext
from decision.decider import Decider
from reasoning.classifier import ClusterClassifier
from reasoning.reasoner import Reasoner
from schemas.action import ActionContext
from schemas.events import AgentEvent, EventType
from schemas.reasoning import AgentPhase, ReasoningResult
from schemas.result import AgentLoopResult, ExecutionResult
from signals.observer import Observer

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 60.0


class AgentBusyError(RuntimeError):
    """Raised by run_once() while another cycle is still processing."""


class AgentStatus(BaseModel):
    """What GET /agent/run reports."""

    is_running: bool
    active_incidents: int
    pending_actions: int
    buffered_signals: int
    is_processing: bool
    last_processed_at: datetime | None


class Agent:
    """Runs Observe → Reason → Decide → Act cycles for one AgentContext.

    Attributes:
        context: Shared store, state, handlers and config.
        observer / reasoner / decider / actor: The four phases. Built from
            the context unless passed in.
    """

    def __init__(
        self,
        context: AgentContext,
        classifier: ClusterClassifier | None = None,
        observer: Observer | None = None,
        reasoner: Reasoner | None = None,
        decider: Decider | None = None,
        actor: Actor | None = None,
    ) -> None:
        self.context = context
        self.observer = observer or Observer(context)
        self.reasoner = reasoner or Reasoner(context, classifier)
        self.decider = decider or Decider(context)
        self.actor = actor or Actor(context)
        self._poll_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    async def run_once(self, event_queue: asyncio.Queue | None = None) -> AgentLoopResult:
        """Run one full cycle and return everything it produced.

        Args:
            event_queue: Optional asyncio.Queue to emit AgentEvents into.
                The display layer reads from it to update live panels. If
                None, events are skipped.

        Raises:
            AgentBusyError: If a cycle is already in flight.
            Exception: Anything a phase raises outside its own isolation.
                is_processing is cleared before it propagates.
        """
        state = self.context.state
        if state.is_processing:
            raise AgentBusyError("An agent cycle is already in progress.")

        state.set_processing(True)
        cycle_start = time.perf_counter()
        phase = AgentPhase.OBSERVE

        async def emit(event_phase: AgentPhase, event_type: EventType, message: str) -> None:
            if event_queue is not None:
                await event_queue.put(AgentEvent(
                    phase=event_phase,
                    event_type=event_type,
                    message=message,
                    timestamp_ms=(time.perf_counter() - cycle_start) * 1000,
                ))

        try:
            # Step 1: observe.
            await emit(phase, EventType.STARTED, "collecting signals...")
            observation = await self.observer.observe()
            for anomaly in observation.anomalies:
                await emit(phase, EventType.PROGRESS, f"{anomaly.severity.value}: {anomaly.description}")
            await emit(
                phase,
                EventType.COMPLETE,
                f"{len(observation.signals)} signals, {len(observation.patterns_detected)} patterns, "
                f"{len(observation.anomalies)} anomalies",
            )

            if observation.is_empty:
                for skipped in (AgentPhase.REASON, AgentPhase.DECIDE, AgentPhase.ACT):
                    await emit(skipped, EventType.SKIPPED, "nothing observed")
                logger.info("Nothing observed; cycle ends after observe.")
                return AgentLoopResult(
                    observation=observation,
                    duration_ms=(time.perf_counter() - cycle_start) * 1000,
                )

            # Step 2: reason.
            phase = AgentPhase.REASON
            await emit(phase, EventType.STARTED, "clustering signals...")
            reasoning = await self.reasoner.reason(observation)
            await emit(phase, EventType.COMPLETE, f"{len(reasoning)} issue cluster(s) classified")

            # Step 3: decide.
            phase = AgentPhase.DECIDE
            await emit(phase, EventType.STARTED, "selecting actions...")
            decisions = await self.decider.decide(reasoning)
            recommended = sum(len(d.recommended_actions) for d in decisions)
            await emit(phase, EventType.COMPLETE, f"{recommended} action(s) recommended")

            # Step 4: act. Each decision runs with its result's merchants so
            # handlers know whom to notify or mitigate for.
            phase = AgentPhase.ACT
            await emit(phase, EventType.STARTED, "executing actions...")
            executions: list[ExecutionResult] = []
            linked: list[ReasoningResult] = []
            for result, decision in zip(reasoning, decisions):
                batch = await self.actor.execute(
                    decision,
                    ActionContext(merchant_ids=result.affected_scope.merchants),
                )
                executions.extend(batch)
                linked.append(_stamp_incident(result, batch))
            state.set_reasoning(linked)

            loop_result = AgentLoopResult(
                observation=observation,
                reasoning_results=linked,
                decisions=decisions,
                execution_results=executions,
                duration_ms=(time.perf_counter() - cycle_start) * 1000,
            )
            summary = loop_result.summary()
            await emit(
                phase,
                EventType.COMPLETE,
                f"{summary.actions_executed} executed, {summary.actions_pending} pending approval",
            )
            logger.info(
                "[ACT] Executed: %d, Pending approval: %d (%.0fms).",
                summary.actions_executed,
                summary.actions_pending,
                loop_result.duration_ms,
            )
            return loop_result

        except Exception as exc:
            await emit(phase, EventType.ERROR, str(exc))
            logger.error("Agent cycle failed during %s. Error: %s", phase.value, exc)
            raise

        finally:
            state.set_processing(False)

    def start(self, interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS) -> None:
        """Run a cycle now, then every interval_seconds until stop().

        A tick that finds a cycle still processing is skipped, not queued.
        Must be called from inside a running event loop.
        """
        if self.is_running:
            logger.info("Agent is already running.")
            return
        self._stopping.clear()
        self._poll_task = asyncio.create_task(self._poll(interval_seconds), name="agent-poll")
        logger.info("Agent started with %.0fs interval.", interval_seconds)

    async def stop(self) -> None:
        """Stop polling. Waits for a cycle in flight to finish; never cancels one."""
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        self._stopping.set()
        await task
        logger.info("Agent stopped.")

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def get_status(self) -> AgentStatus:
        stats = self.context.state.get_stats()
        return AgentStatus(is_running=self.is_running, **stats.model_dump())

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _poll(self, interval_seconds: float) -> None:
        while not self._stopping.is_set():
            if self.context.state.is_processing:
                logger.debug("Previous cycle still processing; skipping tick.")
            else:
                try:
                    await self.run_once()
                except Exception as exc:
                    logger.error("Scheduled agent cycle failed. Error: %s", exc)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval_seconds)
            except TimeoutError:
                pass


def _stamp_incident(result: ReasoningResult, executions: list[ExecutionResult]) -> ReasoningResult:
    """Copy of result carrying the incident id its actions created, if any."""
    for execution in executions:
        incident_id = (execution.result or {}).get("incident_id")
        if execution.success and incident_id:
            return result.model_copy(update={"incident_id": incident_id})
    return result
