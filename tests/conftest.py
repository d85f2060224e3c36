from __future__ import annotations

import os

os.environ["LOG_TO_FILE"] = "0"

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from jobalerts.config import Settings
from jobalerts.matches import MatchRepository
from jobalerts.models import RawMessage, SourceKind
from jobalerts.pipeline import IngestPipeline
from jobalerts.preferences import PreferenceStore
from jobalerts.storage import MemoryKeyValueStore, MemoryMatchStore, MemoryRequestLog

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

SCENARIO_BODY = """\
Your job alert for senior engineer
Acme Corp
Senior Engineer
Acme Corp · London (Hybrid)
Acme Corp
Senior Engineer
Acme Corp · London (Hybrid)
Beta Ltd
Analyst
Beta Ltd · Leeds
"""


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path)


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def match_store() -> MemoryMatchStore:
    return MemoryMatchStore()


@pytest.fixture
def request_log() -> MemoryRequestLog:
    return MemoryRequestLog()


@pytest.fixture
def preferences(kv, settings, clock) -> PreferenceStore:
    return PreferenceStore(kv, settings, clock=clock)


@pytest.fixture
def repository(match_store) -> MatchRepository:
    return MatchRepository(match_store)


@pytest.fixture
def pipeline(repository, preferences) -> IngestPipeline:
    return IngestPipeline(repository, preferences)


@pytest.fixture
def make_message() -> Callable[..., RawMessage]:
    def factory(
        kind: SourceKind | str,
        body: str,
        *,
        received_at: datetime = NOW,
        subject: str = "",
        sender: str = "",
        message_id: str | None = None,
    ) -> RawMessage:
        return RawMessage(
            source_kind=SourceKind.coerce(kind),
            body=body,
            received_at=received_at,
            subject=subject,
            sender=sender,
            message_id=message_id,
        )

    return factory
