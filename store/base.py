"""DataStore abstract base class.

Defines the storage interface the agent depends on: filtered, ordered,
limited reads plus inserts, updates, upserts and deletes over named
collections. The agent never talks SQL or a vendor SDK; it only sees this
interface. Swapping the in-memory store for a real database means writing a
new class that satisfies it, with zero changes to the agent loop.
"""

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

# Collection names
SUPPORT_TICKETS = "support_tickets"
MERCHANT_API_LOGS = "merchant_api_logs"
WEBHOOK_LOGS = "webhook_logs"
CHECKOUT_SESSIONS = "checkout_sessions"
MERCHANTS = "merchants"
AGENT_ACTIONS = "agent_actions"
INCIDENTS = "incidents"
AGENT_STATE = "agent_state"
AGENT_PATTERNS = "agent_patterns"
REASONING_LOGS = "reasoning_logs"

Record = dict[str, Any]


class StoreError(Exception):
    """Raised when a DataStore read or write fails.

    Attributes:
        collection: The collection the failed operation targeted.
    """

    def __init__(self, message: str, collection: str | None = None):
        super().__init__(message)
        self.collection = collection


_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda value, options: value in options,
}


@dataclass(frozen=True)
class Filter:
    """A single field predicate.

    Records missing the field, or holding None for it, never match an
    ordering comparison (gt/gte/lt/lte), mirroring SQL NULL semantics.
    """

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise ValueError(f"Unsupported filter operator '{self.op}'.")

    def matches(self, record: Record) -> bool:
        actual = record.get(self.field)
        if actual is None and self.op not in ("eq", "neq"):
            return False
        try:
            return _OPS[self.op](actual, self.value)
        except TypeError:
            return False


def eq(field: str, value: Any) -> Filter:
    return Filter(field, "eq", value)


def neq(field: str, value: Any) -> Filter:
    return Filter(field, "neq", value)


def gte(field: str, value: Any) -> Filter:
    return Filter(field, "gte", value)


def lte(field: str, value: Any) -> Filter:
    return Filter(field, "lte", value)


def in_(field: str, values: list[Any]) -> Filter:
    return Filter(field, "in", values)


class DataStore(ABC):
    """Abstract base class for all storage backends.

    Every record has at minimum an "id" and a "created_at" timestamp.
    Implementations assign both on insert when the caller omits them.
    All methods return plain dicts; callers validate them into schemas.
    """

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Record]:
        """Return records matching every filter.

        Args:
            collection: Collection name (e.g. "merchant_api_logs").
            filters: Predicates combined with AND. None or empty matches all.
            order_by: Field to sort by. None keeps insertion order.
            descending: Sort direction when order_by is set.
            limit: Maximum number of records to return.

        Raises:
            StoreError: If the backend cannot serve the read.
        """
        ...

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Record | None:
        """Return the record with record_id, or None if it does not exist."""
        ...

    @abstractmethod
    async def insert(self, collection: str, records: Record | list[Record]) -> list[Record]:
        """Insert one or many records and return them as stored.

        Raises:
            StoreError: If the write fails. Nothing is written in that case.
        """
        ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, changes: Record) -> Record | None:
        """Apply changes to one record. Returns None if it does not exist."""
        ...

    @abstractmethod
    async def upsert(self, collection: str, record: Record, on_conflict: str = "id") -> Record:
        """Insert record, or merge it into the existing record whose
        on_conflict field holds the same value."""
        ...

    @abstractmethod
    async def delete(self, collection: str, filters: list[Filter] | None = None) -> int:
        """Delete matching records and return how many were removed.

        None or empty filters delete the whole collection.
        """
        ...


@dataclass(frozen=True)
class PersistResult:
    """Outcome of an advisory write.

    Advisory writes (reasoning logs, key/value state) never affect the
    in-memory pipeline, so their failures are reported here instead of
    raised. Callers decide whether a failure matters.
    """

    ok: bool
    error: str | None = None

    @classmethod
    def failed(cls, exc: Exception) -> "PersistResult":
        return cls(ok=False, error=str(exc))


PERSIST_OK = PersistResult(ok=True)
