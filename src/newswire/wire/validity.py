"""Link validity filter applied at the article source boundary."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

from newswire.wire.models import Article


def is_valid_link(value: object) -> bool:
    """True when `value` is an absolute URL with both scheme and host."""

    if not isinstance(value, str):
        return False
    candidate = value.strip()
    if not candidate:
        return False
    try:
        parsed = urlsplit(candidate)
        hostname = parsed.hostname
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(hostname)


def filter_valid_articles(articles: Iterable[Article]) -> list[Article]:
    return [article for article in articles if is_valid_link(article.link)]
