"""Article source contracts and the store-backed implementation."""

from __future__ import annotations

import logging
from typing import Protocol

from newswire.wire.models import Article
from newswire.wire.validity import filter_valid_articles

logger = logging.getLogger(__name__)


class ArticleSource(Protocol):
    """Interface for the candidate set of publishable articles."""

    def list_articles(self) -> list[Article]:
        """Return every publishable article in stable scan order."""
        raise NotImplementedError


class ArticleScanStore(Protocol):
    """Storage capable of scanning all stored articles."""

    def scan_articles(self) -> list[Article]:
        raise NotImplementedError


class StoreArticleSource:
    """Article source that scans the store and drops items without a valid link."""

    def __init__(self, store: ArticleScanStore) -> None:
        self.store = store

    def list_articles(self) -> list[Article]:
        scanned = self.store.scan_articles()
        valid = filter_valid_articles(scanned)
        if len(valid) != len(scanned):
            logger.debug(
                "Excluded %d stored articles without a valid link (kept=%d).",
                len(scanned) - len(valid),
                len(valid),
            )
        return valid
