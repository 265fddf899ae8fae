"""Cursor state machine that publishes stored articles one at a time in rotation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from newswire.config import EngineSettings
from newswire.timing import epoch_millis, format_published_at, resolve_timezone
from newswire.wire.models import (
    NOT_PUBLISHED_MESSAGE,
    AdvanceResult,
    Article,
    ConsumptionRecord,
    CursorConflictError,
    CursorState,
    CycleEntry,
    CycleMetadata,
    with_cycle_fields,
)
from newswire.wire.source import ArticleSource

logger = logging.getLogger(__name__)


class CursorStore(Protocol):
    """Keyed record storage for cursor, consumption and cycle map state."""

    def load_cursor(self, counter_key: str) -> CursorState | None:
        raise NotImplementedError

    def commit_advance(
        self,
        counter_key: str,
        *,
        cursor: CursorState,
        expected_version: int | None,
        entry: CycleEntry | None,
    ) -> CursorState:
        """Write cursor and cycle entry atomically; raise CursorConflictError on a lost race."""
        raise NotImplementedError

    def load_cycle_entries(self, counter_key: str, cycle_count: int) -> dict[str, CycleEntry]:
        raise NotImplementedError

    def load_consumption(self, counter_key: str) -> ConsumptionRecord | None:
        raise NotImplementedError

    def upsert_consumption(self, counter_key: str, record: ConsumptionRecord) -> None:
        raise NotImplementedError

    def reset_cycle_state(self, counter_key: str, *, cursor: CursorState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class CursorStep:
    """Next cursor position computed from the stored one."""

    next_index: int
    cycle_count: int
    is_new_cycle: bool


def next_position(cursor: CursorState, article_count: int) -> CursorStep:
    """Advance by one modulo `article_count`, bumping the cycle on wraparound."""

    if article_count <= 0:
        raise ValueError("article_count must be > 0")
    next_index = (cursor.current_index + 1) % article_count
    # Any stored position that lands back on 0 closes a traversal, including N == 1.
    is_new_cycle = next_index == 0 and cursor.has_position
    cycle_count = cursor.cycle_count + 1 if is_new_cycle else cursor.cycle_count
    return CursorStep(next_index=next_index, cycle_count=cycle_count, is_new_cycle=is_new_cycle)


class CyclingEngine:
    """Publishes articles from a source in rotation, persisting the cursor per call."""

    def __init__(
        self,
        *,
        source: ArticleSource,
        store: CursorStore,
        settings: EngineSettings | None = None,
        clock: Callable[[], int] = epoch_millis,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.store = store
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._sleep = sleep
        self._monotonic = monotonic
        self._timezone = resolve_timezone(self.settings.publish_timezone)

    @property
    def counter_key(self) -> str:
        return self.settings.counter_key

    def list_valid_articles(self) -> list[Article]:
        return self.source.list_articles()

    def advance(self) -> AdvanceResult:
        """Publish the next article and return it with cycle metadata and snapshot."""

        articles = self.source.list_articles()
        if not articles:
            logger.info("No publishable articles; cursor left untouched.")
            return AdvanceResult.no_articles()

        if self.settings.gated:
            self.wait_for_consumption()

        attempts = self.settings.max_conflict_retries
        for attempt in range(1, attempts + 1):
            stored = self.store.load_cursor(self.counter_key)
            cursor = stored or CursorState()
            step = next_position(cursor, len(articles))
            article = articles[step.next_index]

            entries = self.store.load_cycle_entries(self.counter_key, step.cycle_count)
            new_entry: CycleEntry | None = None
            if article.message_id not in entries:
                now = self._clock()
                new_entry = CycleEntry(
                    message_id=article.message_id,
                    cycle_index=step.next_index,
                    publish_timestamp=now,
                    published_at=format_published_at(now, self._timezone),
                )
                entries[article.message_id] = new_entry

            try:
                persisted = self.store.commit_advance(
                    self.counter_key,
                    cursor=CursorState(
                        current_index=step.next_index,
                        cycle_count=step.cycle_count,
                        last_updated=self._clock(),
                        version=cursor.version + 1,
                    ),
                    expected_version=stored.version if stored is not None else None,
                    entry=new_entry,
                )
            except CursorConflictError:
                logger.warning(
                    "Cursor changed concurrently; retrying advance (counter=%s attempt=%d/%d).",
                    self.counter_key,
                    attempt,
                    attempts,
                )
                continue

            if step.is_new_cycle:
                logger.info(
                    "Cycle %d started (counter=%s total_articles=%d).",
                    persisted.cycle_count,
                    self.counter_key,
                    len(articles),
                )
            logger.debug(
                "Advanced cursor to index=%d cycle=%d article=%s.",
                persisted.current_index,
                persisted.cycle_count,
                article.message_id,
            )
            return self._build_result(
                articles=articles,
                entries=entries,
                cursor=persisted,
                is_new_cycle=step.is_new_cycle,
            )

        raise CursorConflictError(
            f"Could not advance cursor after {attempts} conflicting writes "
            f"(counter={self.counter_key}).",
        )

    def current(self) -> AdvanceResult:
        """Currently published article without moving the cursor."""

        articles = self.source.list_articles()
        if not articles:
            return AdvanceResult.no_articles()
        cursor = self.store.load_cursor(self.counter_key)
        if cursor is None or not 0 <= cursor.current_index < len(articles):
            return AdvanceResult(
                article=None,
                metadata=_metadata(
                    cursor or CursorState(),
                    total=len(articles),
                    is_new_cycle=False,
                    current_article=None,
                ),
                message=NOT_PUBLISHED_MESSAGE,
            )
        entries = self.store.load_cycle_entries(self.counter_key, cursor.cycle_count)
        return self._build_result(
            articles=articles,
            entries=entries,
            cursor=cursor,
            is_new_cycle=False,
        )

    def cycle_articles(self) -> AdvanceResult:
        """Accumulated articles of the active cycle, newest first."""

        articles = self.source.list_articles()
        if not articles:
            return AdvanceResult.no_articles()
        cursor = self.store.load_cursor(self.counter_key) or CursorState()
        entries = self.store.load_cycle_entries(self.counter_key, cursor.cycle_count)
        result = self._build_result(
            articles=articles,
            entries=entries,
            cursor=cursor,
            is_new_cycle=False,
        )
        if result.article is None:
            result.message = NOT_PUBLISHED_MESSAGE
        return result

    def reset(self) -> CursorState:
        """Start over: cursor before index 0, cycle 0, empty article map."""

        cursor = CursorState(current_index=-1, cycle_count=0, last_updated=self._clock())
        self.store.reset_cycle_state(self.counter_key, cursor=cursor)
        logger.info("Cycle state reset (counter=%s).", self.counter_key)
        return cursor

    def acknowledge(self, index: int) -> ConsumptionRecord:
        """Record that a client displayed the article at `index`."""

        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise ValueError(f"Consumed index must be a non-negative integer, got {index!r}")
        record = ConsumptionRecord(last_consumed_index=index, timestamp=self._clock())
        self.store.upsert_consumption(self.counter_key, record)
        return record

    def wait_for_consumption(self) -> bool:
        """Block until the current index is acknowledged; False when the wait timed out."""

        cursor = self.store.load_cursor(self.counter_key)
        if cursor is None or not cursor.has_position:
            return True

        deadline = self._monotonic() + self.settings.consumption_wait_seconds
        while True:
            record = self.store.load_consumption(self.counter_key)
            if record is not None and record.last_consumed_index == cursor.current_index:
                return True
            if self._monotonic() >= deadline:
                logger.warning(
                    "Index %d not acknowledged within %.1fs; advancing anyway (counter=%s).",
                    cursor.current_index,
                    self.settings.consumption_wait_seconds,
                    self.counter_key,
                )
                return False
            self._sleep(self.settings.consumption_poll_seconds)

    def _build_result(
        self,
        *,
        articles: list[Article],
        entries: dict[str, CycleEntry],
        cursor: CursorState,
        is_new_cycle: bool,
    ) -> AdvanceResult:
        current_article: Article | None = None
        if 0 <= cursor.current_index < len(articles):
            current_article = articles[cursor.current_index]
        current_id = current_article.message_id if current_article is not None else None

        snapshot: list[Article] = []
        for article in articles:
            entry = entries.get(article.message_id)
            if entry is None:
                continue
            snapshot.append(
                with_cycle_fields(article, entry, is_current=article.message_id == current_id),
            )
        snapshot.sort(key=lambda item: (item.publish_timestamp or 0, item.cycle_index or 0))
        snapshot.reverse()

        published = next((item for item in snapshot if item.is_current), None)
        return AdvanceResult(
            article=published,
            metadata=_metadata(
                cursor,
                total=len(articles),
                is_new_cycle=is_new_cycle,
                current_article=current_id,
            ),
            cycle_articles=snapshot,
        )


def _metadata(
    cursor: CursorState,
    *,
    total: int,
    is_new_cycle: bool,
    current_article: str | None,
) -> CycleMetadata:
    return CycleMetadata(
        current_index=cursor.current_index,
        cycle_count=cursor.cycle_count,
        is_new_cycle=is_new_cycle,
        total_articles=total,
        current_article=current_article,
    )
