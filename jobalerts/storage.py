"""Narrow store interfaces the pipeline persists through, plus in-memory backends."""
from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any

from jobalerts.errors import DuplicateKeyError, StoreError
from jobalerts.models import MatchRecord, RequestLogEntry

FLAG_FIELDS = ("is_saved", "is_dismissed", "is_applied")


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass


class MatchStore(ABC):
    """Row store for match records, unique on (user_id, identity_key)."""

    @abstractmethod
    def find(self, user_id: str, identity_key: str) -> MatchRecord | None:
        pass

    @abstractmethod
    def insert(self, record: MatchRecord) -> MatchRecord:
        """Persist *record*; raise DuplicateKeyError if its key is taken."""

    @abstractmethod
    def list(self, user_id: str) -> list[MatchRecord]:
        pass

    @abstractmethod
    def update_flags(self, record_id: str, **flags: bool) -> MatchRecord:
        pass


class RequestLog(ABC):
    """Append-only log of external call attempts."""

    @abstractmethod
    def append(self, entry: RequestLogEntry) -> None:
        pass

    @abstractmethod
    def entries_since(self, source: str, since: datetime) -> list[RequestLogEntry]:
        """Entries for *source* with timestamp strictly after *since*, oldest first."""


def check_flags(flags: dict[str, bool]) -> dict[str, bool]:
    unknown = set(flags) - set(FLAG_FIELDS)
    if unknown:
        raise ValueError(f"Unknown status flag(s): {', '.join(sorted(unknown))}")
    return {k: bool(v) for k, v in flags.items()}


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)


class MemoryMatchStore(MatchStore):
    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], MatchRecord] = {}
        self._lock = threading.Lock()

    def find(self, user_id: str, identity_key: str) -> MatchRecord | None:
        with self._lock:
            return self._rows.get((user_id, identity_key))

    def insert(self, record: MatchRecord) -> MatchRecord:
        key = (record.user_id, record.identity_key)
        with self._lock:
            if key in self._rows:
                raise DuplicateKeyError(record.identity_key)
            self._rows[key] = record
        return record

    def list(self, user_id: str) -> list[MatchRecord]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: r.discovered_at)

    def update_flags(self, record_id: str, **flags: bool) -> MatchRecord:
        changes = check_flags(flags)
        with self._lock:
            for key, row in self._rows.items():
                if row.id == record_id:
                    updated = replace(row, **changes)
                    self._rows[key] = updated
                    return updated
        raise StoreError(f"No match record with id {record_id}")


class MemoryRequestLog(RequestLog):
    def __init__(self) -> None:
        self._entries: list[RequestLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: RequestLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries_since(self, source: str, since: datetime) -> list[RequestLogEntry]:
        key = source.lower()
        with self._lock:
            rows = [e for e in self._entries if e.source.lower() == key and e.timestamp > since]
        return sorted(rows, key=lambda e: e.timestamp)
