from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..domain.errors import StoreError
from .record_store import Filters, SortSpec, new_record_id


logger = logging.getLogger(__name__)

_INDEXES: Dict[str, List[Tuple[str, bool]]] = {
    "conversations": [("id", True), ("user_id", False), ("updated_at", False)],
    "messages": [("id", True), ("conversation_id", False), ("created_at", False)],
    "sessions": [("id", True), ("token", True)],
    "devices": [("id", True), ("user_id", True)],
    "tickets": [("id", True), ("user_id", False)],
    "articles": [("id", True), ("category", False), ("created_at", False)],
}


def _strip(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    data = dict(doc)
    data.pop("_id", None)
    return data


class MongoRecordStore:
    """Record store backed by MongoDB through the async motor driver.

    Conditional writes map onto single ``find_one_and_update`` calls, so the
    server applies the filter and the mutation atomically.
    """

    def __init__(self, mongo_url: str, mongo_db: str, client: Optional[AsyncIOMotorClient] = None) -> None:
        self._client = client or AsyncIOMotorClient(mongo_url, serverSelectionTimeoutMS=2000, tz_aware=True)
        self._db = self._client[mongo_db]
        self._indexes_ready = False
        self._index_lock = asyncio.Lock()

    async def _collection(self, name: str) -> AsyncIOMotorCollection:
        if not self._indexes_ready:
            await self._ensure_indexes()
        return self._db[name]

    async def _ensure_indexes(self) -> None:
        async with self._index_lock:
            if self._indexes_ready:
                return
            try:
                for name, indexes in _INDEXES.items():
                    for field, unique in indexes:
                        await self._db[name].create_index(field, unique=unique)
            except PyMongoError as exc:
                raise StoreError("create_index", "*", exc) from exc
            self._indexes_ready = True

    async def insert(self, collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(doc)
        row.setdefault("id", new_record_id())
        try:
            coll = await self._collection(collection)
            await coll.insert_one(row)
        except PyMongoError as exc:
            raise StoreError("insert", collection, exc) from exc
        return _strip(row)  # type: ignore[return-value]

    async def find_one(self, collection: str, filters: Filters) -> Optional[Dict[str, Any]]:
        try:
            coll = await self._collection(collection)
            return _strip(await coll.find_one(filters))
        except PyMongoError as exc:
            raise StoreError("find_one", collection, exc) from exc

    async def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        try:
            coll = await self._collection(collection)
            cursor = coll.find(filters or {})
            # _id breaks ties between records created within the same instant
            order = list(sort or []) + [("_id", ASCENDING)]
            cursor = cursor.sort(order)
            if skip:
                cursor = cursor.skip(skip)
            if limit is not None:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=limit)
            return [_strip(doc) for doc in docs]  # type: ignore[misc]
        except PyMongoError as exc:
            raise StoreError("find", collection, exc) from exc

    async def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        try:
            coll = await self._collection(collection)
            return int(await coll.count_documents(filters or {}))
        except PyMongoError as exc:
            raise StoreError("count", collection, exc) from exc

    async def distinct(self, collection: str, field: str, filters: Optional[Filters] = None) -> List[Any]:
        try:
            coll = await self._collection(collection)
            values = await coll.distinct(field, filters or {})
            return [v for v in values if v is not None]
        except PyMongoError as exc:
            raise StoreError("distinct", collection, exc) from exc

    async def update(self, collection: str, filters: Filters, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            coll = await self._collection(collection)
            updated = await coll.find_one_and_update(
                filters,
                {"$set": values},
                return_document=ReturnDocument.AFTER,
            )
            return _strip(updated)
        except PyMongoError as exc:
            raise StoreError("update", collection, exc) from exc

    async def increment(
        self,
        collection: str,
        filters: Filters,
        field: str,
        amount: int = 1,
        ceiling: Optional[int] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        query = dict(filters)
        if ceiling is not None:
            query[field] = {"$lt": ceiling}
        update: Dict[str, Any] = {"$inc": {field: amount}}
        if values:
            update["$set"] = values
        try:
            coll = await self._collection(collection)
            updated = await coll.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
            return _strip(updated)
        except PyMongoError as exc:
            raise StoreError("increment", collection, exc) from exc

    async def upsert(
        self,
        collection: str,
        filters: Filters,
        values: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        insert_only = {"id": new_record_id(), **(on_insert or {})}
        for key in values:
            insert_only.pop(key, None)
        try:
            coll = await self._collection(collection)
            result = await coll.update_one(
                filters,
                {"$set": values, "$setOnInsert": insert_only},
                upsert=True,
            )
            doc = await coll.find_one(filters)
        except DuplicateKeyError:
            # A concurrent upsert won the unique key; this call becomes an update.
            updated = await self.update(collection, filters, values)
            if updated is None:
                raise StoreError("upsert", collection)
            return updated, False
        except PyMongoError as exc:
            raise StoreError("upsert", collection, exc) from exc
        if doc is None:
            raise StoreError("upsert", collection)
        return _strip(doc), result.upserted_id is not None  # type: ignore[return-value]

    async def delete(self, collection: str, filters: Filters) -> int:
        try:
            coll = await self._collection(collection)
            result = await coll.delete_many(filters)
            return int(result.deleted_count)
        except PyMongoError as exc:
            raise StoreError("delete", collection, exc) from exc
