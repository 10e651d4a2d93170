"""Signal schema.

Signals are normalized events derived from the four operational streams
(support tickets, API error logs, webhook delivery failures, checkout
failures). The Observer creates them fresh on every cycle from the underlying
domain records and never changes them afterwards. They are never persisted
verbatim; the records they came from are the source of truth.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SignalType(str, Enum):
    """The stream a signal was derived from.

    Extends str so values serialize to plain strings ("api_error") and
    compare equal to the raw strings stored in records.
    """

    TICKET = "ticket"
    API_ERROR = "api_error"
    WEBHOOK_FAILURE = "webhook_failure"
    CHECKOUT_FAILURE = "checkout_failure"
    METRIC_ANOMALY = "metric_anomaly"


class SignalSeverity(str, Enum):
    """How bad a single observed event is, from least to most severe."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


ERROR_SEVERITIES = frozenset({SignalSeverity.ERROR, SignalSeverity.CRITICAL})


class Signal(BaseModel):
    """A single normalized event observed within the signal window.

    Attributes:
        id: Identifier of the originating record. Stable across cycles, so
            the same record observed twice yields the same signal id.
        type: Stream category. See SignalType.
        source: Name of the collection the record was read from
            (e.g. "merchant_api_logs").
        merchant_id: Merchant the event belongs to. None for events that
            cannot be attributed to a merchant.
        severity: Derived by a fixed per-stream mapping in the collectors.
        message: One-line human-readable description of the event.
        data: The discriminating fields of the originating record
            (endpoint, status_code, error_code, ...).
        timestamp: When the originating record was created.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: SignalType
    source: str
    merchant_id: str | None = None
    severity: SignalSeverity
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @property
    def is_error(self) -> bool:
        """True for error and critical signals."""
        return self.severity in ERROR_SEVERITIES
