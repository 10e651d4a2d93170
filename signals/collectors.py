"""Signal collectors: one per operational stream.

Each collector reads recent records from one collection and maps them to
normalized Signal objects:

    TicketCollector     support_tickets      every ticket
    ApiErrorCollector   merchant_api_logs    status_code >= 400
    WebhookCollector    webhook_logs         delivery_status == "failed"
    CheckoutCollector   checkout_sessions    status == "failed"

No LLM involved. Same records always produce the same signals, and a signal
keeps the id of the record it came from.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from schemas.signal import Signal, SignalSeverity, SignalType
from store.base import (
    CHECKOUT_SESSIONS,
    MERCHANT_API_LOGS,
    SUPPORT_TICKETS,
    WEBHOOK_LOGS,
    DataStore,
    Filter,
    Record,
    eq,
    gte,
)

_TICKET_PRIORITY_SEVERITY = {
    "urgent": SignalSeverity.CRITICAL,
    "high": SignalSeverity.ERROR,
    "medium": SignalSeverity.WARNING,
}


class SignalCollector(ABC):
    """Reads one collection and maps its records to signals.

    Attributes:
        name: Label used in logs.
        collection: Collection the collector reads.
    """

    name: str
    collection: str

    async def collect(self, store: DataStore, since: datetime, limit: int) -> list[Signal]:
        """Return signals for records created at or after since, newest first.

        Raises:
            StoreError: If the read fails. The Observer treats the source as
                empty for this cycle.
        """
        records = await store.select(
            self.collection,
            [gte("created_at", since), *self.filters()],
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [self.to_signal(r) for r in records]

    def filters(self) -> list[Filter]:
        """Extra predicates beyond the time window."""
        return []

    @abstractmethod
    def to_signal(self, record: Record) -> Signal:
        ...


class TicketCollector(SignalCollector):
    name = "tickets"
    collection = SUPPORT_TICKETS

    def to_signal(self, record: Record) -> Signal:
        return Signal(
            id=record["id"],
            type=SignalType.TICKET,
            source=self.collection,
            merchant_id=record.get("merchant_id"),
            severity=ticket_priority_to_severity(record.get("priority")),
            message=f"[{record.get('category') or 'unknown'}] {record.get('subject', '')}",
            data={
                "subject": record.get("subject"),
                "body": record.get("body"),
                "category": record.get("category"),
                "priority": record.get("priority"),
                "status": record.get("status"),
                "source": record.get("source"),
            },
            timestamp=record["created_at"],
        )


class ApiErrorCollector(SignalCollector):
    name = "api_errors"
    collection = MERCHANT_API_LOGS

    def filters(self) -> list[Filter]:
        return [gte("status_code", 400)]

    def to_signal(self, record: Record) -> Signal:
        status = record.get("status_code")
        return Signal(
            id=record["id"],
            type=SignalType.API_ERROR,
            source=self.collection,
            merchant_id=record.get("merchant_id"),
            severity=status_code_to_severity(status),
            message=f"{record.get('method')} {record.get('endpoint')} returned {status}",
            data={
                "endpoint": record.get("endpoint"),
                "method": record.get("method"),
                "status_code": status,
                "error_message": record.get("error_message"),
                "duration_ms": record.get("duration_ms"),
            },
            timestamp=record["created_at"],
        )


class WebhookCollector(SignalCollector):
    name = "webhook_failures"
    collection = WEBHOOK_LOGS

    def filters(self) -> list[Filter]:
        return [eq("delivery_status", "failed")]

    def to_signal(self, record: Record) -> Signal:
        retries = record.get("retry_count") or 0
        return Signal(
            id=record["id"],
            type=SignalType.WEBHOOK_FAILURE,
            source=self.collection,
            merchant_id=record.get("merchant_id"),
            severity=SignalSeverity.ERROR if retries >= 3 else SignalSeverity.WARNING,
            message=f"Webhook {record.get('event_type')} failed ({retries} retries)",
            data={
                "event_type": record.get("event_type"),
                "retry_count": retries,
                "last_error": record.get("last_error"),
            },
            timestamp=record["created_at"],
        )


class CheckoutCollector(SignalCollector):
    name = "checkout_failures"
    collection = CHECKOUT_SESSIONS

    def filters(self) -> list[Filter]:
        return [eq("status", "failed")]

    def to_signal(self, record: Record) -> Signal:
        return Signal(
            id=record["id"],
            type=SignalType.CHECKOUT_FAILURE,
            source=self.collection,
            merchant_id=record.get("merchant_id"),
            severity=SignalSeverity.ERROR,
            message=f"Checkout failed: {record.get('failure_reason') or 'Unknown error'}",
            data={
                "cart_total": record.get("cart_total"),
                "failure_reason": record.get("failure_reason"),
                "error_code": record.get("error_code"),
                "customer_email": record.get("customer_email"),
            },
            timestamp=record["created_at"],
        )


DEFAULT_COLLECTORS: tuple[SignalCollector, ...] = (
    TicketCollector(),
    ApiErrorCollector(),
    WebhookCollector(),
    CheckoutCollector(),
)


def ticket_priority_to_severity(priority: str | None) -> SignalSeverity:
    return _TICKET_PRIORITY_SEVERITY.get(priority or "", SignalSeverity.INFO)


def status_code_to_severity(status_code: int | None) -> SignalSeverity:
    if not status_code:
        return SignalSeverity.WARNING
    if status_code >= 500:
        return SignalSeverity.CRITICAL
    if status_code >= 400:
        return SignalSeverity.ERROR
    return SignalSeverity.WARNING
