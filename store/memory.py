"""In-memory DataStore.

Dict-backed implementation of the DataStore interface. Collections are
created lazily on first write. Lost on process restart; swap for a real
database backend when persistence matters.

Records are copied on the way in and on the way out, so callers can never
mutate stored state by holding on to a returned dict.
"""

import copy
import logging
import uuid

from store.base import DataStore, Filter, Record
from utils.clock import utcnow

logger = logging.getLogger(__name__)


class InMemoryDataStore(DataStore):
    """DataStore backed by a dict of collections.

    Attributes:
        _collections: collection name → (record id → record), in insertion
            order.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Record]] = {}

    async def select(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[Record]:
        rows = [
            r for r in self._collections.get(collection, {}).values()
            if all(f.matches(r) for f in filters or [])
        ]

        if order_by is not None:
            # Records without the sort field go last regardless of direction
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + missing

        if limit is not None:
            rows = rows[:limit]

        return [copy.deepcopy(r) for r in rows]

    async def get(self, collection: str, record_id: str) -> Record | None:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def insert(self, collection: str, records: Record | list[Record]) -> list[Record]:
        batch = [records] if isinstance(records, dict) else list(records)
        table = self._collections.setdefault(collection, {})

        prepared = []
        for record in batch:
            row = copy.deepcopy(record)
            row.setdefault("id", str(uuid.uuid4()))
            if row.get("id") is None:
                row["id"] = str(uuid.uuid4())
            if row.get("created_at") is None:
                row["created_at"] = utcnow()
            prepared.append(row)

        for row in prepared:
            table[row["id"]] = row

        logger.debug("Inserted %d record(s) into '%s'.", len(prepared), collection)
        return [copy.deepcopy(r) for r in prepared]

    async def update(self, collection: str, record_id: str, changes: Record) -> Record | None:
        record = self._collections.get(collection, {}).get(record_id)
        if record is None:
            return None
        record.update(copy.deepcopy(changes))
        return copy.deepcopy(record)

    async def upsert(self, collection: str, record: Record, on_conflict: str = "id") -> Record:
        key = record.get(on_conflict)
        table = self._collections.setdefault(collection, {})
        for existing in table.values():
            if key is not None and existing.get(on_conflict) == key:
                existing.update(copy.deepcopy(record))
                return copy.deepcopy(existing)
        inserted = await self.insert(collection, record)
        return inserted[0]

    async def delete(self, collection: str, filters: list[Filter] | None = None) -> int:
        table = self._collections.get(collection, {})
        doomed = [rid for rid, r in table.items() if all(f.matches(r) for f in filters or [])]
        for rid in doomed:
            del table[rid]
        return len(doomed)

    def count(self, collection: str) -> int:
        """Return how many records a collection holds. Test and demo helper."""
        return len(self._collections.get(collection, {}))
