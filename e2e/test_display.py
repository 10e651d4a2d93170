"""Live display tests.

Feeds AgentEvents into LiveDisplay and checks the per-phase panel state.
No terminal needed; consume() runs against a stand-in for rich's Live.
"""

import asyncio

from display.live import MAX_PANEL_LINES, LiveDisplay
from schemas.events import AgentEvent, EventType
from schemas.reasoning import AgentPhase


def event(phase: str, event_type: str, message: str = "msg", at: float = 0.0) -> AgentEvent:
    return AgentEvent(phase=phase, event_type=event_type, message=message, timestamp_ms=at)


class RecordingLive:
    """Collects everything consume() renders."""

    def __init__(self) -> None:
        self.updates = []

    def update(self, renderable) -> None:
        self.updates.append(renderable)


class TestApply:
    def test_every_phase_starts_waiting(self):
        display = LiveDisplay()
        assert [display.status_of(p) for p in AgentPhase] == ["waiting"] * 4

    def test_lifecycle(self):
        display = LiveDisplay()

        display.apply(event("observe", "started", "collecting signals..."))
        assert display.status_of(AgentPhase.OBSERVE) == "running"

        display.apply(event("observe", "progress", "critical: 6 critical errors detected"))
        display.apply(event("observe", "complete", "6 signals, 1 patterns, 1 anomalies"))

        assert display.status_of(AgentPhase.OBSERVE) == "complete"
        assert display.messages_of(AgentPhase.OBSERVE) == [
            "collecting signals...",
            "→ critical: 6 critical errors detected",
            "✓ 6 signals, 1 patterns, 1 anomalies",
        ]

    def test_skipped_and_error(self):
        display = LiveDisplay()

        display.apply(event("reason", "skipped", "nothing observed"))
        display.apply(event("act", "error", "store unreachable"))

        assert display.status_of(AgentPhase.REASON) == "skipped"
        assert display.messages_of(AgentPhase.REASON) == ["- nothing observed"]
        assert display.status_of(AgentPhase.ACT) == "error"
        assert display.messages_of(AgentPhase.ACT) == ["✗ store unreachable"]

    def test_panels_keep_only_recent_lines(self):
        display = LiveDisplay()
        for n in range(MAX_PANEL_LINES + 3):
            display.apply(event("observe", "progress", f"line {n}"))

        messages = display.messages_of(AgentPhase.OBSERVE)

        assert len(messages) == MAX_PANEL_LINES
        assert messages[-1] == f"→ line {MAX_PANEL_LINES + 2}"

    def test_phases_without_panel_are_ignored(self):
        display = LiveDisplay(phases=[AgentPhase.OBSERVE])
        display.apply(event("act", "started"))
        assert display.status_of(AgentPhase.OBSERVE) == "waiting"


class TestConsume:
    async def test_stops_at_sentinel(self):
        display = LiveDisplay()
        live = RecordingLive()
        queue: asyncio.Queue = asyncio.Queue()
        for e in (event("observe", "started"), event("observe", "complete", at=12.0)):
            await queue.put(e)
        await queue.put(None)

        await display.consume(queue, live)

        assert len(live.updates) == 2
        assert display.status_of(AgentPhase.OBSERVE) == "complete"
        assert queue.empty()

    def test_make_live_renders_initial_layout(self):
        live = LiveDisplay().make_live()
        assert live is not None


class TestProgressLine:
    def test_counts_finished_phases(self):
        display = LiveDisplay()
        display.apply(event("observe", "complete", at=250.0))
        display.apply(event("reason", "skipped", at=300.0))
        display.apply(event("decide", "started", at=310.0))

        assert display.progress_line() == "2/4 phases done  [0.31s]"

    def test_fresh_display(self):
        assert LiveDisplay().progress_line() == "0/4 phases done  [0.00s]"
