"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from newswire.storage.repository import SQLiteRepository
from newswire.wire.models import Article


def make_article(message_id: str, link: str | None = None, **fields: str) -> Article:
    return Article(
        message_id=message_id,
        link=link if link is not None else f"https://example.com/news/{message_id.lower()}",
        title=fields.get("title", f"Title {message_id}"),
        description=fields.get("description", f"Description {message_id}"),
        location=fields.get("location", "NEW YORK"),
    )


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository(tmp_path / "wire.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def seeded_repository(repository: SQLiteRepository) -> SQLiteRepository:
    repository.upsert_articles([make_article("A"), make_article("B"), make_article("C")])
    return repository


class FakeClock:
    """Deterministic millisecond clock plus a monotonic clock driven by sleep()."""

    def __init__(self, start_ms: int = 1_760_000_000_000, step_ms: int = 1_000) -> None:
        self.now_ms = start_ms
        self.step_ms = step_ms
        self.monotonic_seconds = 0.0
        self.sleeps: list[float] = []

    def millis(self) -> int:
        self.now_ms += self.step_ms
        return self.now_ms

    def monotonic(self) -> float:
        return self.monotonic_seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.monotonic_seconds += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
