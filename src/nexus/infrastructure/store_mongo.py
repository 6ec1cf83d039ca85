from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List, Optional, Union

import logging
import os
import time

from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from .store import (
    InMemoryDataStore,
    ListenerRegistry,
    StoreError,
    Subscription,
    TABLES,
    UNIQUE_COLUMNS,
    InsertListener,
    prepare_rows,
)

logger = logging.getLogger(__name__)

# Hidden ordering key; rows come back in insertion order.
_SEQ = "_seq"


def _mongo_required() -> bool:
    return os.getenv("NEXUS_STORE_REQUIRE_MONGO", "false").lower() in ("1", "true", "yes")


class MongoDataStore:
    """Row store backed by MongoDB, one collection per table.

    If Mongo is unreachable and NEXUS_STORE_REQUIRE_MONGO is not true,
    operations fall back to an internal in-memory store to avoid breaking dev/CI.
    Insert listeners are delivered in-process after the write succeeds.
    """

    def __init__(self, client: Optional[MongoClient] = None) -> None:
        self._fallback = InMemoryDataStore()
        self._listeners = ListenerRegistry()
        self._seq_lock = Lock()
        self._last_seq = 0
        self._db = None
        try:
            mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
            self._client = client or MongoClient(mongo_url, serverSelectionTimeoutMS=500)
            # Trigger server selection
            self._client.server_info()
            self._db = self._client[os.getenv("MONGO_DB", "nexus")]
            for table in TABLES:
                self._db[table].create_index([(_SEQ, ASCENDING)])
                self._db[table].create_index("id", unique=True)
            for table, columns in UNIQUE_COLUMNS.items():
                for column in columns:
                    self._db[table].create_index(column, unique=True, sparse=True)
        except PyMongoError as exc:
            if _mongo_required():
                raise RuntimeError("Mongo store required but not available") from exc
            logger.warning("Mongo unavailable (%s); using in-memory store", exc)
            self._db = None

    @property
    def kind(self) -> str:
        return "in-memory" if self.using_fallback else "mongo"

    @property
    def using_fallback(self) -> bool:
        return self._db is None

    def _collection(self, table: str):
        if table not in TABLES:
            raise StoreError(f"Unknown table: {table}")
        return self._db[table]

    def _next_seq(self) -> int:
        with self._seq_lock:
            self._last_seq = max(self._last_seq + 1, time.time_ns())
            return self._last_seq

    @staticmethod
    def _projection() -> Dict[str, int]:
        return {"_id": 0, _SEQ: 0}

    def insert(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        if self.using_fallback:
            return self._fallback.insert(table, rows)
        collection = self._collection(table)
        prepared = prepare_rows(rows)
        documents = [{**record, _SEQ: self._next_seq()} for record in prepared]
        try:
            collection.insert_many(documents, ordered=True)
        except PyMongoError as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc
        self._listeners.deliver(table, prepared)
        return prepared

    def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        if self.using_fallback:
            return self._fallback.select(table, **filters)
        try:
            cursor = self._collection(table).find(filters, self._projection()).sort(_SEQ, ASCENDING)
            return list(cursor)
        except PyMongoError as exc:
            raise StoreError(f"select from {table} failed: {exc}") from exc

    def update(self, table: str, values: Dict[str, Any], **filters: Any) -> List[Dict[str, Any]]:
        if self.using_fallback:
            return self._fallback.update(table, values, **filters)
        if not filters:
            raise StoreError("update requires at least one filter")
        collection = self._collection(table)
        try:
            ids = [doc["id"] for doc in collection.find(filters, {"_id": 0, "id": 1})]
            if not ids:
                return []
            collection.update_many({"id": {"$in": ids}}, {"$set": values})
            return list(collection.find({"id": {"$in": ids}}, self._projection()).sort(_SEQ, ASCENDING))
        except PyMongoError as exc:
            raise StoreError(f"update of {table} failed: {exc}") from exc

    def subscribe(self, table: str, listener: InsertListener) -> Subscription:
        if self.using_fallback:
            return self._fallback.subscribe(table, listener)
        if table not in TABLES:
            raise StoreError(f"Unknown table: {table}")
        return self._listeners.add(table, listener)
