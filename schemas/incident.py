"""Incident schemas.

An Incident is the persisted record of a confirmed, ongoing operational
issue. The agent only creates one when the Decider recommends
create_incident and the corresponding action runs. The incident taxonomy
defined here is also the Reasoner's classification vocabulary.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from utils.clock import utcnow


class IncidentType(str, Enum):
    """Incident taxonomy. Every ReasoningResult is classified into one of these."""

    MIGRATION_MISSTEP = "migration_misstep"
    PLATFORM_REGRESSION = "platform_regression"
    DOCUMENTATION_GAP = "documentation_gap"
    CONFIG_ERROR = "config_error"
    PAYMENT_ISSUE = "payment_issue"
    API_OUTAGE = "api_outage"


class IncidentSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentStatus(str, Enum):
    DETECTED = "detected"
    INVESTIGATING = "investigating"
    CONFIRMED = "confirmed"
    MITIGATING = "mitigating"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class Evidence(BaseModel):
    """One link in an evidence chain, tying a conclusion back to a signal.

    Attributes:
        type: Signal type of the source event, or "pattern" / "metric".
        source_id: Id of the signal (and therefore the originating record).
        description: The signal's message.
        timestamp: When the source event happened.
        data: The signal's raw data fields.
    """

    type: str
    source_id: str
    description: str
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class Incident(BaseModel):
    """A persisted incident record."""

    id: str
    title: str
    description: str | None = None
    type: IncidentType
    severity: IncidentSeverity
    affected_merchants: list[str] = Field(default_factory=list)
    affected_merchant_count: int = 0
    root_cause: str | None = None
    root_cause_confidence: float | None = None
    evidence: list[Evidence] = Field(default_factory=list)
    related_tickets: list[str] = Field(default_factory=list)
    status: IncidentStatus = IncidentStatus.DETECTED
    assigned_to: str | None = None
    resolution: str | None = None
    impact_assessment: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
