"""Polling sync client: keeps a local ordered feed in step with the wire engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from newswire.client.api_client import WireApiError, WirePayload
from newswire.client.feed import FeedCache, FeedOrder
from newswire.config import ClientSettings
from newswire.timing import backoff_delay
from newswire.wire.models import Article, CycleMetadata

logger = logging.getLogger(__name__)


class WireApi(Protocol):
    """Subset of the wire API the sync client depends on."""

    async def advance(self) -> WirePayload: ...

    async def cycle_articles(self) -> WirePayload: ...

    async def acknowledge(self, index: int) -> None: ...

    async def reset(self) -> None: ...


@dataclass(slots=True)
class FeedMetadata:
    """Metadata delivered to subscribers with every feed update."""

    cycle_count: int = 0
    current_index: int = -1
    total_articles: int = 0
    is_new_cycle: bool = False
    is_reset: bool = False
    current_article: str | None = None


Subscriber = Callable[[list[Article], FeedMetadata], None]


class SyncClient:
    """Single poll loop per instance that fans feed updates out to subscribers."""

    def __init__(
        self,
        api: WireApi,
        *,
        settings: ClientSettings | None = None,
        order: FeedOrder = FeedOrder.NEWEST_FIRST,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.api = api
        self.settings = settings or ClientSettings()
        self.order = order
        self.cache = FeedCache()
        self.retry_count = 0
        self._sleep = sleep
        self._subscribers: list[Subscriber] = []
        self._running = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._pending_acks: set[asyncio.Task[None]] = set()
        self._current_id: str | None = None
        self._current_index: int | None = None
        self._start_token: object | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)
        logger.debug("Subscriber added (total=%d).", len(self._subscribers))

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
                logger.debug("Subscriber removed (total=%d).", len(self._subscribers))

        return unsubscribe

    async def start(self) -> None:
        """Load the cycle snapshot, then launch the poll loop; no-op when running or starting."""

        if self._running or self._start_token is not None:
            return
        token = object()
        self._start_token = token
        try:
            if self._task is not None and not self._task.done():
                # A stopped loop may still be finishing its in-flight request.
                await self._task
            if self._start_token is not token:
                # stop() was called while the previous loop drained.
                return
            self._running = True
        finally:
            if self._start_token is token:
                self._start_token = None

        self._stop_event = asyncio.Event()
        self.retry_count = 0
        logger.info(
            "Sync client starting (poll every %.1fs).",
            self.settings.poll_interval_seconds,
        )

        await self._load_snapshot()
        if self._running:
            self._task = asyncio.create_task(self._poll_loop(), name="newswire-poll-loop")

    def stop(self) -> None:
        """Cooperative stop: the loop exits at its next iteration boundary."""

        if self._running:
            logger.info("Sync client stopping.")
        self._running = False
        self._start_token = None
        self._stop_event.set()

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        """Stop, wait for the loop, give acknowledgments one request timeout to finish."""

        self.stop()
        await self.wait_stopped()
        if not self._pending_acks:
            return
        _, unfinished = await asyncio.wait(
            set(self._pending_acks),
            timeout=self.settings.request_timeout_seconds,
        )
        if unfinished:
            logger.warning("Cancelling %d unfinished acknowledgments.", len(unfinished))
            for task in unfinished:
                task.cancel()
            await asyncio.gather(*unfinished, return_exceptions=True)

    async def reset_cycle(self) -> None:
        """Reset the engine, drop the local cache and broadcast the reset signal."""

        await self.api.reset()
        self.cache.clear()
        self._current_id = None
        self._current_index = None
        logger.info("Cycle reset; local feed cleared.")
        self._notify([], FeedMetadata(cycle_count=0, is_reset=True))

    def retry_delay(self) -> float:
        return backoff_delay(
            self.retry_count,
            base_seconds=self.settings.backoff_base_seconds,
            cap_seconds=self.settings.backoff_cap_seconds,
        )

    async def _load_snapshot(self) -> None:
        try:
            payload = await self.api.cycle_articles()
        except WireApiError as error:
            logger.warning("Initial cycle snapshot unavailable: %s", error)
            return
        if payload.is_empty:
            logger.warning("Initial cycle snapshot is empty.")
            return
        self._apply(payload, is_new_cycle=False)

    async def _poll_loop(self) -> None:
        while self._running:
            delay = self.settings.poll_interval_seconds
            payload: WirePayload | None
            try:
                payload = await self.api.advance()
            except WireApiError as error:
                logger.warning("Poll failed: %s", error)
                payload = None

            if not self._running:
                break

            if payload is None or payload.is_empty:
                self.retry_count += 1
                if self.retry_count > self.settings.max_retries:
                    logger.error(
                        "Max retries (%d) exceeded. Stopping polling.",
                        self.settings.max_retries,
                    )
                    self._running = False
                    break
                delay = self.retry_delay()
                logger.info(
                    "No articles received (retry %d/%d); next poll in %.1fs.",
                    self.retry_count,
                    self.settings.max_retries,
                    delay,
                )
            else:
                self.retry_count = 0
                metadata = payload.metadata
                self._apply(payload, is_new_cycle=metadata.is_new_cycle if metadata else False)

            await self._pause(delay)

    def _apply(self, payload: WirePayload, *, is_new_cycle: bool) -> None:
        metadata = payload.metadata
        if metadata is not None and self._cache_is_stale(metadata, payload.article):
            logger.info(
                "Server moved to cycle %d index %d (cached cycle %s index %s); "
                "starting a fresh feed.",
                metadata.cycle_count,
                metadata.current_index,
                self.cache.cycle_count,
                self._current_index,
            )
            self.cache.clear()
        if metadata is not None:
            self.cache.cycle_count = metadata.cycle_count

        current = payload.article
        current_id = current.message_id if current is not None else None
        if current_id is None and metadata is not None:
            current_id = metadata.current_article

        batch = list(payload.articles)
        if current is not None:
            batch.append(current)
        added = self.cache.merge(batch, current_id=current_id)
        if added:
            logger.debug("Merged %d new articles into feed.", len(added))

        current_index = _resolve_index(current, metadata)
        is_new_current = current_id is not None and (
            current_id != self._current_id or current_index != self._current_index
        )
        self._current_id = current_id
        self._current_index = current_index

        self._notify(
            self.cache.ordered(self.order),
            FeedMetadata(
                cycle_count=metadata.cycle_count if metadata else self.cache.cycle_count or 0,
                current_index=current_index if current_index is not None else -1,
                total_articles=metadata.total_articles if metadata else len(self.cache),
                is_new_cycle=is_new_cycle,
                current_article=current_id,
            ),
        )

        if is_new_current and current_index is not None and self._running:
            self._acknowledge_in_background(current_index)

    def _cache_is_stale(self, metadata: CycleMetadata, current: Article | None) -> bool:
        """True when the server started over: new cycle, rewound cursor or re-stamped article."""

        if self.cache.cycle_count is None:
            return False
        if metadata.cycle_count != self.cache.cycle_count:
            return True
        if self._current_index is not None and 0 <= metadata.current_index < self._current_index:
            return True
        if current is None or current.publish_timestamp is None:
            return False
        cached = self.cache.get(current.message_id)
        return (
            cached is not None
            and cached.publish_timestamp is not None
            and cached.publish_timestamp != current.publish_timestamp
        )

    def _acknowledge_in_background(self, index: int) -> None:
        task = asyncio.create_task(self._acknowledge(index), name=f"newswire-ack-{index}")
        self._pending_acks.add(task)
        task.add_done_callback(self._pending_acks.discard)

    async def _acknowledge(self, index: int) -> None:
        try:
            await self.api.acknowledge(index)
        except WireApiError as error:
            logger.warning("Could not acknowledge index %d: %s", index, error)

    def _notify(self, articles: list[Article], metadata: FeedMetadata) -> None:
        for callback in list(self._subscribers):
            try:
                callback(list(articles), metadata)
            except Exception:
                logger.exception("Feed subscriber raised; continuing.")

    async def _pause(self, seconds: float) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass


def _resolve_index(current: Article | None, metadata: CycleMetadata | None) -> int | None:
    if metadata is not None and metadata.current_index >= 0:
        return metadata.current_index
    if current is not None:
        return current.cycle_index
    return None
