"""Identifier-keyed local feed cache with frozen first-sight timestamps."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from enum import Enum

from newswire.wire.models import Article


class FeedOrder(str, Enum):
    """Display order for the rendered feed."""

    NEWEST_FIRST = "newest"
    CYCLE_POSITION = "cycle"


def merge_article(existing: Article | None, incoming: Article) -> Article:
    """Merge an incoming copy into the cached one without touching frozen fields."""

    if existing is None:
        return replace(incoming, extra=dict(incoming.extra))
    frozen = existing.publish_timestamp is not None
    return replace(
        incoming,
        publish_timestamp=(
            existing.publish_timestamp if frozen else incoming.publish_timestamp
        ),
        published_at=existing.published_at if frozen else incoming.published_at,
        cycle_index=(
            existing.cycle_index if existing.cycle_index is not None else incoming.cycle_index
        ),
        extra={**existing.extra, **incoming.extra},
    )


def order_articles(articles: Iterable[Article], order: FeedOrder) -> list[Article]:
    items = list(articles)
    if order is FeedOrder.CYCLE_POSITION:
        return sorted(
            items,
            key=lambda item: (item.cycle_index is None, item.cycle_index or 0, item.message_id),
        )
    return sorted(
        items,
        key=lambda item: (
            item.publish_timestamp is None,
            -(item.publish_timestamp or 0),
            -(item.cycle_index or 0),
        ),
    )


class FeedCache:
    """Articles seen during the current cycle, keyed by message id."""

    def __init__(self) -> None:
        self._articles: dict[str, Article] = {}
        self.cycle_count: int | None = None

    def __len__(self) -> int:
        return len(self._articles)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._articles

    def get(self, message_id: str) -> Article | None:
        return self._articles.get(message_id)

    def merge(self, articles: Iterable[Article], *, current_id: str | None = None) -> list[str]:
        """Merge a batch; return ids that were not cached before. Absent ids are kept."""

        added: list[str] = []
        for incoming in articles:
            existing = self._articles.get(incoming.message_id)
            if existing is None:
                added.append(incoming.message_id)
            self._articles[incoming.message_id] = merge_article(existing, incoming)

        if current_id is not None:
            for message_id, article in self._articles.items():
                is_current = message_id == current_id
                if article.is_current != is_current:
                    self._articles[message_id] = replace(article, is_current=is_current)
        return added

    def ordered(self, order: FeedOrder = FeedOrder.NEWEST_FIRST) -> list[Article]:
        return order_articles(self._articles.values(), order)

    def clear(self) -> None:
        self._articles.clear()
        self.cycle_count = None
