"""File-backed stores: CSV tables with file locking and a YAML key-value file."""
from __future__ import annotations

import csv
import fcntl
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Callable, Iterator

import yaml

from jobalerts.errors import DuplicateKeyError, StoreError, StoreUnavailableError
from jobalerts.log import get_logger
from jobalerts.models import MatchRecord, RequestLogEntry, RequestStatus, SourceKind
from jobalerts.storage import KeyValueStore, MatchStore, RequestLog, check_flags

log = get_logger(__name__)

MATCH_HEADERS: list[str] = [
    "id", "user_id", "identity_key", "title", "company", "location",
    "salary_range", "requirements", "posted_at", "source_kind", "description",
    "application_url", "score", "is_saved", "is_dismissed", "is_applied",
    "discovered_at",
]
REQUEST_HEADERS: list[str] = ["source", "status", "timestamp"]


def _lock(f: IO, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f: IO) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def _dt(value: str) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def _match_to_row(record: MatchRecord) -> dict[str, str]:
    row = {k: "" if v is None else str(v) for k, v in asdict(record).items()}
    row["requirements"] = "|".join(record.requirements)
    row["source_kind"] = record.source_kind.value
    row["posted_at"] = _iso(record.posted_at)
    row["discovered_at"] = _iso(record.discovered_at)
    return row


def _row_to_match(row: dict[str, str]) -> MatchRecord:
    return MatchRecord(
        id=row["id"],
        identity_key=row["identity_key"],
        user_id=row["user_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        score=int(row["score"] or 0),
        discovered_at=_dt(row["discovered_at"]),  # type: ignore[arg-type]
        source_kind=SourceKind.coerce(row["source_kind"]),
        posted_at=_dt(row["posted_at"]),
        salary_range=row["salary_range"] or None,
        requirements=[r for r in row["requirements"].split("|") if r],
        description=row["description"],
        application_url=row["application_url"] or None,
        is_saved=_flag(row["is_saved"]),
        is_dismissed=_flag(row["is_dismissed"]),
        is_applied=_flag(row["is_applied"]),
    )


class _CsvTable:
    """One CSV file guarded by an fcntl lock and a process-local mutex."""

    def __init__(self, path: Path, headers: list[str]) -> None:
        self.path = Path(path)
        self.headers = headers
        self._mutex = threading.Lock()

    def _open(self, mode: str) -> IO:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return open(self.path, mode, newline="", encoding="utf-8")
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot open {self.path}: {exc}") from exc

    def ensure(self) -> None:
        if self.path.exists():
            return
        with self._mutex, self._open("a") as f:
            _lock(f)
            if f.tell() == 0:
                csv.writer(f).writerow(self.headers)
            _unlock(f)
            log.info("Created table → %s", self.path.name)

    def read(self) -> list[dict[str, str]]:
        self.ensure()
        with self._mutex, self._open("r") as f:
            _lock(f, exclusive=False)
            rows = list(csv.DictReader(f))
            _unlock(f)
        return rows

    @staticmethod
    def _rows(f: IO) -> Iterator[dict[str, str]]:
        f.seek(0)
        return csv.DictReader(f)

    def append(
        self,
        row: dict[str, str],
        unique: Callable[[Iterator[dict[str, str]]], None] | None = None,
    ) -> None:
        """Append *row*; ``unique(existing_rows)`` may raise to veto it under the lock."""
        self.ensure()
        with self._mutex, self._open("a+") as f:
            _lock(f)
            try:
                if unique is not None:
                    unique(self._rows(f))
                f.seek(0, 2)
                csv.DictWriter(f, fieldnames=self.headers).writerow(row)
            finally:
                _unlock(f)

    def modify(self, change: Callable[[list[dict[str, str]]], Any]) -> Any:
        """Read, ``change(rows)`` in place, and write back under one exclusive lock."""
        self.ensure()
        with self._mutex, self._open("r+") as f:
            _lock(f)
            try:
                rows = list(self._rows(f))
                outcome = change(rows)
                f.seek(0)
                f.truncate()
                w = csv.DictWriter(f, fieldnames=self.headers)
                w.writeheader()
                w.writerows(rows)
            finally:
                _unlock(f)
        return outcome


class CsvMatchStore(MatchStore):
    def __init__(self, path: str | Path) -> None:
        self.table = _CsvTable(Path(path), MATCH_HEADERS)

    def find(self, user_id: str, identity_key: str) -> MatchRecord | None:
        for row in self.table.read():
            if row["user_id"] == user_id and row["identity_key"] == identity_key:
                return _row_to_match(row)
        return None

    def insert(self, record: MatchRecord) -> MatchRecord:
        def unique(rows: Iterator[dict[str, str]]) -> None:
            for row in rows:
                if row["user_id"] == record.user_id and row["identity_key"] == record.identity_key:
                    raise DuplicateKeyError(record.identity_key)

        self.table.append(_match_to_row(record), unique=unique)
        log.debug("Stored match: %s @ %s [%d]", record.title, record.company, record.score)
        return record

    def list(self, user_id: str) -> list[MatchRecord]:
        return [_row_to_match(r) for r in self.table.read() if r["user_id"] == user_id]

    def update_flags(self, record_id: str, **flags: bool) -> MatchRecord:
        changes = check_flags(flags)

        def apply(rows: list[dict[str, str]]) -> MatchRecord:
            for r in rows:
                if r.get("id") == record_id:
                    for k, v in changes.items():
                        r[k] = str(v)
                    return _row_to_match(r)
            raise StoreError(f"No match record with id {record_id}")

        updated = self.table.modify(apply)
        log.debug("Updated %s → %s", record_id, changes)
        return updated


class CsvRequestLog(RequestLog):
    def __init__(self, path: str | Path) -> None:
        self.table = _CsvTable(Path(path), REQUEST_HEADERS)

    def append(self, entry: RequestLogEntry) -> None:
        self.table.append(
            {
                "source": entry.source.lower(),
                "status": entry.status.value,
                "timestamp": _iso(entry.timestamp),
            }
        )

    def entries_since(self, source: str, since: datetime) -> list[RequestLogEntry]:
        key = source.lower()
        entries = []
        for row in self.table.read():
            ts = _dt(row["timestamp"])
            if row["source"] == key and ts is not None and ts > since:
                entries.append(RequestLogEntry(key, RequestStatus(row["status"]), ts))
        return sorted(entries, key=lambda e: e.timestamp)


class YamlKeyValueStore(KeyValueStore):
    """Scalars and small mappings kept in one YAML document."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._mutex = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                _lock(f, exclusive=False)
                data = yaml.safe_load(f)
                _unlock(f)
        except (OSError, yaml.YAMLError) as exc:
            raise StoreUnavailableError(f"Cannot read {self.path}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._mutex:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._mutex:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a+", encoding="utf-8") as f:
                    _lock(f)
                    try:
                        f.seek(0)
                        data = yaml.safe_load(f)
                        if not isinstance(data, dict):
                            data = {}
                        data[key] = value
                        f.seek(0)
                        f.truncate()
                        yaml.safe_dump(data, f, sort_keys=True)
                    finally:
                        _unlock(f)
            except (OSError, yaml.YAMLError) as exc:
                raise StoreUnavailableError(f"Cannot write {self.path}: {exc}") from exc
