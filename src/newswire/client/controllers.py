"""Controller for the feed watch CLI command."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from newswire.client.api_client import WireApiClient
from newswire.client.feed import FeedOrder
from newswire.client.sync import FeedMetadata, SyncClient
from newswire.config import Settings
from newswire.wire.models import Article

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WatchCommand:
    """CLI inputs for the watch command."""

    api_url: str | None
    order: FeedOrder
    max_updates: int | None
    poll_interval_seconds: float | None = None


@dataclass(slots=True)
class WatchSummary:
    """Outcome of a watch session."""

    updates: int
    stopped_by_retries: bool


class FeedCliController:
    """Runs the sync client and renders feed updates as lines."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def watch(self, command: WatchCommand, emit: Callable[[str], None]) -> WatchSummary:
        settings = Settings.from_env()
        settings.validate_for_client(override_api_url=command.api_url)
        if command.poll_interval_seconds is not None:
            settings.client.poll_interval_seconds = command.poll_interval_seconds
        return asyncio.run(self._watch(settings, command, emit))

    async def _watch(
        self,
        settings: Settings,
        command: WatchCommand,
        emit: Callable[[str], None],
    ) -> WatchSummary:
        updates = 0
        done = asyncio.Event()

        async with WireApiClient(
            command.api_url or settings.client.api_url,
            timeout_seconds=settings.client.request_timeout_seconds,
            transport=self._transport,
        ) as api:
            client = SyncClient(api, settings=settings.client, order=command.order)

            def on_update(articles: list[Article], metadata: FeedMetadata) -> None:
                nonlocal updates
                updates += 1
                for line in render_feed(articles, metadata):
                    emit(line)
                if command.max_updates is not None and updates >= command.max_updates:
                    client.stop()
                    done.set()

            unsubscribe = client.subscribe(on_update)
            try:
                await client.start()
                if client.is_running:
                    await client.wait_stopped()
            finally:
                unsubscribe()
                await client.aclose()

        stopped_by_retries = (
            not done.is_set() and client.retry_count > settings.client.max_retries
        )
        return WatchSummary(updates=updates, stopped_by_retries=stopped_by_retries)


def render_feed(articles: list[Article], metadata: FeedMetadata) -> list[str]:
    """Plain-text rendering of one feed update."""

    if metadata.is_reset:
        return ["-- cycle reset --"]
    progress = (
        f"{metadata.current_index + 1}/{metadata.total_articles}"
        if metadata.total_articles
        else "-"
    )
    header = f"== cycle #{metadata.cycle_count} progress {progress}"
    if metadata.is_new_cycle:
        header += " (new cycle)"
    lines = [header]
    for article in articles:
        marker = ">" if article.is_current else " "
        location = article.location or "NEW YORK"
        lines.append(
            f"{marker} [{article.published_at or '--:--:--.---'}] {location}: "
            f"{article.title or 'Untitled Article'} <{article.link}>",
        )
    return lines
