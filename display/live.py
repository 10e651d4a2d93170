"""Rich live display: one panel per OODA phase, updating in real time.

The display layer is fully decoupled from the agent. It subscribes to an
asyncio.Queue of AgentEvents and renders them into a live terminal layout.
The agent runs whether or not a display is attached. It just puts events
into the queue and never checks if anyone is reading.

Usage:
    event_queue = asyncio.Queue()
    display = LiveDisplay()

    with display.make_live() as live:
        cycle = asyncio.create_task(agent.run_once(event_queue))
        consumer = asyncio.create_task(display.consume(event_queue, live))
        result = await cycle
        await event_queue.put(None)  # sentinel, tells consume() to stop
        await consumer
"""

import asyncio
from dataclasses import dataclass, field

from rich.columns import Columns
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from schemas.events import AgentEvent, EventType
from schemas.reasoning import AgentPhase

MAX_PANEL_LINES = 4
PANEL_WIDTH = 34

# event type → (panel status after the event, line prefix). None keeps the status.
_TRANSITIONS: dict[EventType, tuple[str | None, str]] = {
    EventType.STARTED:  ("running",  ""),
    EventType.PROGRESS: (None,       "→ "),
    EventType.COMPLETE: ("complete", "✓ "),
    EventType.SKIPPED:  ("skipped",  "- "),
    EventType.ERROR:    ("error",    "✗ "),
}

_ICONS = {
    "waiting":  "[dim]○[/dim]",
    "running":  "[bold yellow]●[/bold yellow]",
    "complete": "[bold green]✓[/bold green]",
    "skipped":  "[dim]–[/dim]",
    "error":    "[bold red]✗[/bold red]",
}

_BORDERS = {
    "waiting":  "dim",
    "running":  "yellow",
    "complete": "green",
    "skipped":  "bright_black",
    "error":    "red",
}

_DONE = {"complete", "skipped", "error"}


@dataclass
class _PhaseState:
    phase: AgentPhase
    status: str = "waiting"
    elapsed_ms: float = 0.0
    messages: list[str] = field(default_factory=list)


class LiveDisplay:
    """Renders the cycle's phases side by side, in loop order.

    Attributes:
        _states: Dict of phase → _PhaseState, updated as events arrive.
        _order:  Phases in cycle order, which is also the panel order.
        _last_ms: Timestamp of the newest event seen, for the header line.
    """

    def __init__(self, phases: list[AgentPhase] | None = None) -> None:
        self._order = list(phases or AgentPhase)
        self._states = {phase: _PhaseState(phase=phase) for phase in self._order}
        self._last_ms = 0.0

    def make_live(self) -> Live:
        """Return a Rich Live context manager ready to use with `with`."""
        return Live(self._render(), refresh_per_second=12, transient=False)

    async def consume(self, queue: asyncio.Queue, live: Live) -> None:
        """Apply events from the queue to the layout until the None sentinel.

        Args:
            queue: The asyncio.Queue the agent writes AgentEvents into.
            live:  The active Rich Live context to update on each event.
        """
        while (event := await queue.get()) is not None:
            self.apply(event)
            live.update(self._render())

    def apply(self, event: AgentEvent) -> None:
        """Fold one event into its phase's panel. Unknown phases are ignored."""
        state = self._states.get(event.phase)
        if state is None:
            return

        status, prefix = _TRANSITIONS[event.event_type]
        if status is not None:
            state.status = status
        state.elapsed_ms = event.timestamp_ms
        self._last_ms = max(self._last_ms, event.timestamp_ms)

        state.messages.append(f"{prefix}{event.message}")
        del state.messages[:-MAX_PANEL_LINES]

    def status_of(self, phase: AgentPhase) -> str:
        return self._states[phase].status

    def messages_of(self, phase: AgentPhase) -> list[str]:
        return list(self._states[phase].messages)

    def progress_line(self) -> str:
        """One-line cycle header, e.g. "2/4 phases done  [0.41s]"."""
        done = sum(1 for s in self._states.values() if s.status in _DONE)
        return f"{done}/{len(self._order)} phases done  [{self._last_ms / 1000:.2f}s]"

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _panel(self, state: _PhaseState) -> Panel:
        header = Text.from_markup(
            f"[dim][{state.elapsed_ms / 1000:.2f}s][/dim]  {_ICONS.get(state.status, '○')}"
        )
        body = [header, *(Text(f"  {line}", style="dim") for line in state.messages)]
        return Panel(
            Group(*body),
            title=f"[bold]{state.phase.value.upper()}[/bold]",
            border_style=_BORDERS.get(state.status, "dim"),
            width=PANEL_WIDTH,
        )

    def _render(self) -> Group:
        panels = [self._panel(self._states[phase]) for phase in self._order]
        return Group(Text(self.progress_line(), style="bold"), Columns(panels))
