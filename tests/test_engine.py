from __future__ import annotations

import re

import allure
import pytest
from conftest import FakeClock, make_article

from newswire.config import EngineSettings
from newswire.storage.repository import SQLiteRepository
from newswire.wire.engine import CyclingEngine, next_position
from newswire.wire.models import (
    NO_ARTICLES_MESSAGE,
    NOT_PUBLISHED_MESSAGE,
    CursorConflictError,
    CursorState,
)
from newswire.wire.source import StoreArticleSource

pytestmark = [
    allure.epic("Cycling Engine"),
    allure.feature("Rotation & Cycle State"),
]

PUBLISHED_AT = re.compile(r"^\d{2}:\d{2}:\d{2}\.\d{3}$")


def _engine(
    repository: SQLiteRepository,
    clock: FakeClock,
    settings: EngineSettings | None = None,
    store: object | None = None,
) -> CyclingEngine:
    return CyclingEngine(
        source=StoreArticleSource(repository),
        store=store or repository,  # type: ignore[arg-type]
        settings=settings,
        clock=clock.millis,
        sleep=clock.sleep,
        monotonic=clock.monotonic,
    )


class RacingStore:
    """Lets a rival engine advance right before the first conditional write."""

    def __init__(self, inner: SQLiteRepository, rival: CyclingEngine) -> None:
        self.inner = inner
        self.rival = rival
        self.raced = False

    def __getattr__(self, name: str) -> object:
        return getattr(self.inner, name)

    def commit_advance(self, counter_key, *, cursor, expected_version, entry):  # noqa: ANN001, ANN201
        if not self.raced:
            self.raced = True
            self.rival.advance()
        return self.inner.commit_advance(
            counter_key,
            cursor=cursor,
            expected_version=expected_version,
            entry=entry,
        )


class AlwaysConflictingStore:
    def __init__(self, inner: SQLiteRepository) -> None:
        self.inner = inner
        self.attempts = 0

    def __getattr__(self, name: str) -> object:
        return getattr(self.inner, name)

    def commit_advance(self, counter_key, *, cursor, expected_version, entry):  # noqa: ANN001, ANN201
        self.attempts += 1
        raise CursorConflictError("simulated lost race")


def test_next_position_wraps_and_counts_cycles() -> None:
    assert next_position(CursorState(), 3).next_index == 0
    assert next_position(CursorState(), 3).is_new_cycle is False

    step = next_position(CursorState(current_index=2, cycle_count=4), 3)
    assert (step.next_index, step.cycle_count, step.is_new_cycle) == (0, 5, True)

    single = next_position(CursorState(current_index=0, cycle_count=0), 1)
    assert (single.next_index, single.cycle_count, single.is_new_cycle) == (0, 1, True)

    with pytest.raises(ValueError, match="article_count"):
        next_position(CursorState(), 0)


def test_advance_walks_three_articles_and_wraps(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock)

    first = engine.advance()
    assert first.article is not None
    assert first.article.message_id == "A"
    assert first.article.is_current is True
    assert first.article.published_at == "08:53:21.000"
    assert first.metadata is not None
    assert first.metadata.to_payload() == {
        "currentIndex": 0,
        "cycleCount": 0,
        "isNewCycle": False,
        "totalArticles": 3,
        "currentArticle": "A",
    }
    assert [item.message_id for item in first.cycle_articles] == ["A"]

    engine.advance()
    third = engine.advance()
    assert third.metadata is not None
    assert third.metadata.current_index == 2
    assert [item.message_id for item in third.cycle_articles] == ["C", "B", "A"]
    assert [item.is_current for item in third.cycle_articles] == [True, False, False]

    fourth = engine.advance()
    assert fourth.article is not None
    assert fourth.article.message_id == "A"
    assert fourth.metadata is not None
    assert (fourth.metadata.current_index, fourth.metadata.cycle_count) == (0, 1)
    assert fourth.metadata.is_new_cycle is True
    assert [item.message_id for item in fourth.cycle_articles] == ["A"]
    assert fourth.article.publish_timestamp != first.article.publish_timestamp


@pytest.mark.parametrize("count", [1, 2, 5])
def test_every_traversal_visits_each_index_once(
    repository: SQLiteRepository,
    clock: FakeClock,
    count: int,
) -> None:
    repository.upsert_articles([make_article(f"M{i}") for i in range(count)])
    engine = _engine(repository, clock)

    for step in range(count * 3):
        result = engine.advance()
        assert result.metadata is not None
        assert result.metadata.current_index == step % count
        assert result.metadata.cycle_count == step // count
        assert result.metadata.is_new_cycle is (step > 0 and step % count == 0)
        assert result.article is not None
        assert result.article.message_id == f"M{step % count}"
        assert len(result.cycle_articles) == step % count + 1


def test_publish_time_is_frozen_within_a_cycle(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock)
    first = engine.advance()
    engine.advance()

    assert first.article is not None
    snapshot = engine.cycle_articles()
    by_id = {item.message_id: item for item in snapshot.cycle_articles}
    assert by_id["A"].publish_timestamp == first.article.publish_timestamp
    assert by_id["A"].published_at == first.article.published_at
    assert PUBLISHED_AT.match(by_id["B"].published_at or "")

    current = engine.current()
    assert current.article is not None
    assert current.article.message_id == "B"
    assert current.article.publish_timestamp == by_id["B"].publish_timestamp


def test_current_and_cycle_articles_do_not_move_cursor(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock)

    before = engine.current()
    assert before.article is None
    assert before.message == NOT_PUBLISHED_MESSAGE
    assert before.metadata is not None
    assert before.metadata.current_index == -1

    engine.advance()
    engine.current()
    engine.cycle_articles()
    cursor = seeded_repository.load_cursor(engine.counter_key)
    assert cursor is not None
    assert cursor.current_index == 0


def test_empty_source_returns_message_without_mutation(
    repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(repository, clock)
    result = engine.advance()

    assert result.is_empty
    assert result.metadata is None
    assert result.to_payload() == {
        "article": None,
        "metadata": None,
        "cycleArticles": [],
        "message": NO_ARTICLES_MESSAGE,
    }
    assert repository.load_cursor(engine.counter_key) is None


def test_articles_without_valid_link_are_never_published(
    repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    repository.upsert_articles(
        [make_article("A"), make_article("X", link="not-a-url"), make_article("B")],
    )
    engine = _engine(repository, clock)

    published = []
    for _ in range(4):
        result = engine.advance()
        assert result.article is not None
        published.append(result.article.message_id)
    assert published == ["A", "B", "A", "B"]
    assert [item.message_id for item in engine.list_valid_articles()] == ["A", "B"]


def test_reset_clears_every_cycle_and_restarts_at_zero(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock)
    for _ in range(4):
        engine.advance()
    assert seeded_repository.count_cycle_entries(engine.counter_key) == 4

    cursor = engine.reset()
    assert (cursor.current_index, cursor.cycle_count) == (-1, 0)

    snapshot = engine.cycle_articles()
    assert snapshot.article is None
    assert snapshot.cycle_articles == []
    assert snapshot.message == NOT_PUBLISHED_MESSAGE
    assert seeded_repository.count_cycle_entries(engine.counter_key) == 0

    after = engine.advance()
    assert after.metadata is not None
    assert (after.metadata.current_index, after.metadata.cycle_count) == (0, 0)
    assert after.metadata.is_new_cycle is False


def test_counters_are_independent(seeded_repository: SQLiteRepository, clock: FakeClock) -> None:
    primary = _engine(seeded_repository, clock)
    secondary = _engine(seeded_repository, clock, EngineSettings(counter_key="secondary"))

    primary.advance()
    primary.advance()
    result = secondary.advance()

    assert result.metadata is not None
    assert result.metadata.current_index == 0


def test_acknowledge_records_index_and_rejects_invalid(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock)
    record = engine.acknowledge(2)
    assert record.last_consumed_index == 2
    assert seeded_repository.load_consumption(engine.counter_key) == record

    with pytest.raises(ValueError, match="non-negative"):
        engine.acknowledge(-1)
    with pytest.raises(ValueError):
        engine.acknowledge(True)


@allure.feature("Consumption Gating")
def test_gated_advance_times_out_then_proceeds(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    settings = EngineSettings(
        gated=True,
        consumption_wait_seconds=10.0,
        consumption_poll_seconds=1.0,
    )
    engine = _engine(seeded_repository, clock, settings)

    engine.advance()
    assert clock.sleeps == []

    result = engine.advance()
    assert result.metadata is not None
    assert result.metadata.current_index == 1
    assert clock.sleeps == [1.0] * 10


@allure.feature("Consumption Gating")
def test_gated_advance_proceeds_immediately_once_acknowledged(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    engine = _engine(seeded_repository, clock, EngineSettings(gated=True))
    engine.advance()
    engine.acknowledge(0)

    result = engine.advance()
    assert result.metadata is not None
    assert result.metadata.current_index == 1
    assert clock.sleeps == []

    engine.acknowledge(1)
    assert engine.wait_for_consumption() is True
    assert clock.sleeps == []


@allure.feature("Concurrent Advances")
def test_lost_race_is_retried_without_losing_an_update(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    rival = _engine(seeded_repository, clock)
    store = RacingStore(seeded_repository, rival)
    engine = _engine(seeded_repository, clock, store=store)

    result = engine.advance()

    assert result.metadata is not None
    assert result.metadata.current_index == 1
    assert result.article is not None
    assert result.article.message_id == "B"
    assert [item.message_id for item in result.cycle_articles] == ["B", "A"]


@allure.feature("Concurrent Advances")
def test_persistent_conflicts_raise_after_retry_budget(
    seeded_repository: SQLiteRepository,
    clock: FakeClock,
) -> None:
    store = AlwaysConflictingStore(seeded_repository)
    engine = _engine(seeded_repository, clock, EngineSettings(max_conflict_retries=3), store)

    with pytest.raises(CursorConflictError, match="after 3 conflicting writes"):
        engine.advance()
    assert store.attempts == 3
    assert seeded_repository.load_cursor(engine.counter_key) is None
