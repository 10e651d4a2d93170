"""Cycle progress events.

Agent.run_once() puts one AgentEvent on an optional asyncio.Queue at each
phase boundary. The live display is the only consumer today. A cycle never
waits on the queue, so a missing or slow consumer cannot stall it.
"""

from enum import Enum

from pydantic import BaseModel, Field

from schemas.reasoning import AgentPhase


class EventType(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"      # intermediate finding, e.g. an anomaly
    COMPLETE = "complete"
    SKIPPED = "skipped"        # observation was empty
    ERROR = "error"            # phase raised; the cycle is aborting


class AgentEvent(BaseModel):
    """One progress event from one phase of a cycle.

    Attributes:
        phase: Emitting phase; selects the display panel.
        event_type: Where in the phase's lifecycle this is.
        message: Short text for the panel, e.g. "12 signals, 2 patterns".
        timestamp_ms: Milliseconds since the cycle started.
    """

    phase: AgentPhase
    event_type: EventType
    message: str
    timestamp_ms: float = Field(ge=0.0)
