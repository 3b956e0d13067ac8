from __future__ import annotations

import copy
import logging
import uuid
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from ..config import get_settings


logger = logging.getLogger(__name__)

Filters = Dict[str, Any]
SortSpec = Sequence[Tuple[str, int]]

COLLECTIONS = ("conversations", "messages", "sessions", "devices", "tickets", "articles")


class RecordStore(Protocol):
    async def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]: ...

    async def find_one(self, collection: str, filters: Filters) -> Optional[Dict[str, Any]]: ...

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]: ...

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int: ...

    async def distinct(self, collection: str, field: str, filters: Optional[Filters] = None) -> List[Any]: ...

    async def update(self, collection: str, filters: Filters, values: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    async def increment(
        self,
        collection: str,
        filters: Filters,
        field: str,
        amount: int = 1,
        ceiling: Optional[int] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]: ...

    async def upsert(
        self,
        collection: str,
        filters: Filters,
        values: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]: ...

    async def delete(self, collection: str, filters: Filters) -> int: ...


def new_record_id() -> str:
    return uuid.uuid4().hex


def _matches(doc: Dict[str, Any], filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(doc.get(key) == value for key, value in filters.items())


def _sort_docs(docs: List[Dict[str, Any]], sort: Optional[SortSpec]) -> List[Dict[str, Any]]:
    # Stable sorts applied last-key-first; ties keep insertion order.
    out = list(docs)
    for field, direction in reversed(list(sort or [])):
        present = [d for d in out if d.get(field) is not None]
        missing = [d for d in out if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=direction < 0)
        out = present + missing
    return out


class InMemoryRecordStore:
    """Process-local record store.

    Every operation runs its critical section under one lock with no await
    inside it, so conditional writes are atomic across tasks and threads.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, List[Dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        self._lock = RLock()

    def _rows(self, collection: str) -> List[Dict[str, Any]]:
        return self._collections.setdefault(collection, [])

    async def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row = copy.deepcopy(doc)
            row.setdefault("id", new_record_id())
            self._rows(collection).append(row)
            return copy.deepcopy(row)

    async def find_one(self, collection: str, filters: Filters) -> Optional[Dict[str, Any]]:
        with self._lock:
            for row in self._rows(collection):
                if _matches(row, filters):
                    return copy.deepcopy(row)
            return None

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [row for row in self._rows(collection) if _matches(row, filters)]
            rows = _sort_docs(rows, sort)
            start = max(0, skip)
            end = None if limit is None else start + max(0, limit)
            return [copy.deepcopy(row) for row in rows[start:end]]

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        with self._lock:
            return sum(1 for row in self._rows(collection) if _matches(row, filters))

    async def distinct(self, collection: str, field: str, filters: Optional[Filters] = None) -> List[Any]:
        with self._lock:
            seen: List[Any] = []
            for row in self._rows(collection):
                value = row.get(field)
                if value is None or not _matches(row, filters) or value in seen:
                    continue
                seen.append(value)
            return seen

    async def update(self, collection: str, filters: Filters, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for row in self._rows(collection):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    return copy.deepcopy(row)
            return None

    async def increment(
        self,
        collection: str,
        filters: Filters,
        field: str,
        amount: int = 1,
        ceiling: Optional[int] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            for row in self._rows(collection):
                if not _matches(row, filters):
                    continue
                current = int(row.get(field) or 0)
                if ceiling is not None and current >= ceiling:
                    return None
                row[field] = current + amount
                if values:
                    row.update(copy.deepcopy(values))
                return copy.deepcopy(row)
            return None

    async def upsert(
        self,
        collection: str,
        filters: Filters,
        values: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        with self._lock:
            for row in self._rows(collection):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    return copy.deepcopy(row), False
            row = {"id": new_record_id(), **copy.deepcopy(filters), **copy.deepcopy(on_insert or {}), **copy.deepcopy(values)}
            self._rows(collection).append(row)
            return copy.deepcopy(row), True

    async def delete(self, collection: str, filters: Filters) -> int:
        with self._lock:
            rows = self._rows(collection)
            keep = [row for row in rows if not _matches(row, filters)]
            removed = len(rows) - len(keep)
            self._collections[collection] = keep
            return removed


_store: RecordStore | None = None


def get_record_store() -> RecordStore:
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.store_impl == "mongo":
        from .record_store_mongo import MongoRecordStore

        _store = MongoRecordStore(settings.mongo_url, settings.mongo_db)
        logger.info("Using MongoDB record store db=%s", settings.mongo_db)
        return _store
    _store = InMemoryRecordStore()
    return _store


def set_record_store(store: Optional[RecordStore]) -> None:
    global _store
    _store = store


def reset_record_store() -> None:
    set_record_store(None)
