from __future__ import annotations

import copy
import logging
import os
import uuid
from datetime import UTC, datetime
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, Union

logger = logging.getLogger(__name__)

InsertListener = Callable[[Dict[str, Any]], None]

TABLES: Tuple[str, ...] = (
    "organizations",
    "organization_memberships",
    "projects",
    "sprints",
    "tickets",
    "organization_invites",
    "org_ai_recommendations",
    "org_provisioning_steps",
)

# table -> column that must be unique across rows
UNIQUE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "organizations": ("slug",),
    "organization_invites": ("token",),
}


class StoreError(Exception):
    """Raised when an insert/update is rejected (unknown table, constraint violation)."""


class Subscription:
    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self.active = True

    def close(self) -> None:
        if self.active:
            self.active = False
            self._unsubscribe()


def now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def prepare_rows(rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Copy rows and fill in ``id`` and ``created_at`` where missing."""
    batch = [rows] if isinstance(rows, dict) else list(rows)
    prepared: List[Dict[str, Any]] = []
    for row in batch:
        record = dict(row)
        record.setdefault("id", uuid.uuid4().hex)
        record.setdefault("created_at", now_iso())
        prepared.append(record)
    return prepared


class ListenerRegistry:
    """Insert listeners per table, called after the write is committed."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[InsertListener]] = {}
        self._lock = RLock()

    def add(self, table: str, listener: InsertListener) -> Subscription:
        with self._lock:
            self._listeners.setdefault(table, []).append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                current = self._listeners.get(table, [])
                if listener in current:
                    current.remove(listener)

        return Subscription(_unsubscribe)

    def deliver(self, table: str, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(table, ()))
        for record in records:
            for listener in listeners:
                try:
                    listener(copy.deepcopy(record))
                except Exception:
                    logger.exception("Insert listener failed for table %s", table)


class DataStore(Protocol):
    kind: str

    def insert(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]: ...

    def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]: ...

    def update(self, table: str, values: Dict[str, Any], **filters: Any) -> List[Dict[str, Any]]: ...

    def subscribe(self, table: str, listener: InsertListener) -> Subscription: ...


class InMemoryDataStore:
    """Row store standing in for the managed database.

    Rows are plain dicts. Inserts get an ``id`` and ``created_at`` when the
    caller does not provide them, and are delivered to insert listeners in
    insertion order after the write is committed.
    """

    kind = "in-memory"

    def __init__(self) -> None:
        self._tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
        self._listeners = ListenerRegistry()
        self._lock = RLock()

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        rows = self._tables.get(table)
        if rows is None:
            raise StoreError(f"Unknown table: {table}")
        return rows

    def _check_unique(self, table: str, existing: Iterable[Dict[str, Any]], new_rows: List[Dict[str, Any]]) -> None:
        for column in UNIQUE_COLUMNS.get(table, ()):
            seen = {row.get(column) for row in existing if row.get(column) is not None}
            for row in new_rows:
                value = row.get(column)
                if value is None:
                    continue
                if value in seen:
                    raise StoreError(f"duplicate key value violates unique constraint on {table}.{column}")
                seen.add(value)

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(row.get(key) == value for key, value in filters.items())

    def insert(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        with self._lock:
            existing = self._rows(table)
            prepared = prepare_rows(rows)
            self._check_unique(table, existing, prepared)
            existing.extend(prepared)
            inserted = [copy.deepcopy(record) for record in prepared]
        self._listeners.deliver(table, inserted)
        return inserted

    def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._rows(table) if self._matches(row, filters)]

    def update(self, table: str, values: Dict[str, Any], **filters: Any) -> List[Dict[str, Any]]:
        if not filters:
            raise StoreError("update requires at least one filter")
        with self._lock:
            rows = self._rows(table)
            targets = [row for row in rows if self._matches(row, filters)]
            others = [row for row in rows if not self._matches(row, filters)]
            self._check_unique(table, others, [{**row, **values} for row in targets])
            for row in targets:
                row.update(values)
            return [copy.deepcopy(row) for row in targets]

    def subscribe(self, table: str, listener: InsertListener) -> Subscription:
        with self._lock:
            self._rows(table)
        return self._listeners.add(table, listener)


_store: Optional[DataStore] = None


def get_store() -> DataStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("NEXUS_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        from .store_mongo import MongoDataStore

        _store = MongoDataStore()
        return _store
    if impl != "memory":
        logger.warning("Unsupported NEXUS_STORE_IMPL=%s; falling back to in-memory store", impl)
    _store = InMemoryDataStore()
    return _store


def reset_store() -> None:
    """Drop the process-wide store (useful for tests)."""

    global _store
    _store = None
