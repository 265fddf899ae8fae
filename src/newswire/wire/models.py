"""Domain models for the article cycling engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace

NO_ARTICLES_MESSAGE = "No articles available"
NOT_PUBLISHED_MESSAGE = "No article has been published yet"

_CORE_KEYS = frozenset(
    {
        "message_id",
        "link",
        "title",
        "description",
        "location",
        "publishTimestamp",
        "publishedAt",
        "cycleIndex",
        "isCurrent",
    },
)


class CursorConflictError(RuntimeError):
    """Cursor record changed between read and conditional write."""


@dataclass(slots=True)
class Article:
    """Publishable article plus the cycle fields assigned by the engine."""

    message_id: str
    link: str
    title: str = ""
    description: str = ""
    location: str = ""
    publish_timestamp: int | None = None
    published_at: str | None = None
    cycle_index: int | None = None
    is_current: bool = False
    extra: dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.extra)
        payload.update(
            {
                "message_id": self.message_id,
                "link": self.link,
                "title": self.title,
                "description": self.description,
                "location": self.location,
                "publishTimestamp": self.publish_timestamp,
                "publishedAt": self.published_at,
                "cycleIndex": self.cycle_index,
                "isCurrent": self.is_current,
            },
        )
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> Article:
        """Build an article from a JSON object; raise ValueError when identity is missing."""

        message_id = payload.get("message_id")
        if message_id is None or str(message_id).strip() == "":
            raise ValueError("Article payload is missing message_id")
        link = payload.get("link")
        if not isinstance(link, str):
            raise ValueError(f"Article {message_id!r} has no link")
        return cls(
            message_id=str(message_id),
            link=link,
            title=_text(payload.get("title")),
            description=_text(payload.get("description")),
            location=_text(payload.get("location")),
            publish_timestamp=_optional_int(payload.get("publishTimestamp")),
            published_at=_optional_text(payload.get("publishedAt")),
            cycle_index=_optional_int(payload.get("cycleIndex")),
            is_current=payload.get("isCurrent") is True,
            extra={key: value for key, value in payload.items() if key not in _CORE_KEYS},
        )


@dataclass(slots=True)
class CursorState:
    """Persisted pointer to the currently published article."""

    current_index: int = -1
    cycle_count: int = 0
    last_updated: int = 0
    version: int = 0

    @property
    def has_position(self) -> bool:
        return self.current_index >= 0


@dataclass(slots=True)
class ConsumptionRecord:
    """Last index a client acknowledged as displayed."""

    last_consumed_index: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class CycleEntry:
    """First-sight snapshot of one article inside one cycle."""

    message_id: str
    cycle_index: int
    publish_timestamp: int
    published_at: str


@dataclass(slots=True)
class CycleMetadata:
    """Cursor metadata reported alongside engine results."""

    current_index: int
    cycle_count: int
    is_new_cycle: bool
    total_articles: int
    current_article: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "currentIndex": self.current_index,
            "cycleCount": self.cycle_count,
            "isNewCycle": self.is_new_cycle,
            "totalArticles": self.total_articles,
            "currentArticle": self.current_article,
        }


@dataclass(slots=True)
class AdvanceResult:
    """Engine output: current article, cursor metadata and the cycle snapshot."""

    article: Article | None
    metadata: CycleMetadata | None
    cycle_articles: list[Article] = field(default_factory=list)
    message: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.article is None

    @classmethod
    def no_articles(cls) -> AdvanceResult:
        return cls(article=None, metadata=None, message=NO_ARTICLES_MESSAGE)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "article": self.article.to_payload() if self.article is not None else None,
            "metadata": self.metadata.to_payload() if self.metadata is not None else None,
            "cycleArticles": [article.to_payload() for article in self.cycle_articles],
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload


def with_cycle_fields(article: Article, entry: CycleEntry, *, is_current: bool) -> Article:
    """Copy of `article` carrying the frozen cycle snapshot."""

    return replace(
        article,
        publish_timestamp=entry.publish_timestamp,
        published_at=entry.published_at,
        cycle_index=entry.cycle_index,
        is_current=is_current,
        extra=dict(article.extra),
    )


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _optional_text(value: object) -> str | None:
    return None if value is None else str(value)


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
