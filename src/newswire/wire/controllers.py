"""Controllers for article and cycle CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from newswire.config import Settings
from newswire.storage.repository import SQLiteRepository
from newswire.wire.engine import CyclingEngine
from newswire.wire.models import AdvanceResult, Article
from newswire.wire.source import StoreArticleSource
from newswire.wire.validity import is_valid_link


@dataclass(slots=True)
class ArticlesImportCommand:
    """CLI inputs for article import command."""

    db_path: Path | None
    source_file: Path


@dataclass(slots=True)
class ArticlesListCommand:
    """CLI inputs for article listing command."""

    db_path: Path | None
    show_excluded: bool


@dataclass(slots=True)
class CycleCommand:
    """CLI inputs shared by cycle commands."""

    db_path: Path | None
    gated: bool | None = None


@dataclass(slots=True)
class AcknowledgeCommand:
    """CLI inputs for consumption acknowledgment command."""

    db_path: Path | None
    index: int


class WireCliController:
    """Coordinates article and cycle command execution."""

    def import_articles(self, command: ArticlesImportCommand) -> list[str]:
        articles, skipped = load_article_file(command.source_file)
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            result = repository.upsert_articles(articles)
        invalid = sum(1 for article in articles if not is_valid_link(article.link))
        return [
            "Article import completed: "
            f"file={command.source_file} inserted={result.inserted} "
            f"updated={result.updated} skipped={skipped} invalid_links={invalid}",
        ]

    def list_articles(self, command: ArticlesListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            stored = repository.scan_articles()
        valid = [article for article in stored if is_valid_link(article.link)]
        lines = [f"Articles: stored={len(stored)} valid={len(valid)}"]
        for position, article in enumerate(valid):
            lines.append(f"  [{position}] {article.message_id} {article.title} {article.link}")
        if command.show_excluded:
            for article in stored:
                if not is_valid_link(article.link):
                    lines.append(f"  [excluded] {article.message_id} link={article.link!r}")
        return lines

    def advance(self, command: CycleCommand) -> list[str]:
        with _engine(command.db_path, gated=command.gated) as engine:
            return _result_lines(engine.advance())

    def current(self, command: CycleCommand) -> list[str]:
        with _engine(command.db_path) as engine:
            return _result_lines(engine.current())

    def cycle_articles(self, command: CycleCommand) -> list[str]:
        with _engine(command.db_path) as engine:
            result = engine.cycle_articles()
        lines = _result_lines(result)
        lines.append(f"Cycle articles: {len(result.cycle_articles)}")
        for article in result.cycle_articles:
            marker = "*" if article.is_current else " "
            lines.append(
                f" {marker} #{article.cycle_index} {article.published_at} "
                f"{article.message_id} {article.title}",
            )
        return lines

    def reset(self, command: CycleCommand) -> list[str]:
        with _engine(command.db_path) as engine:
            cursor = engine.reset()
        return [f"Cycle reset: index={cursor.current_index} cycle={cursor.cycle_count}"]

    def acknowledge(self, command: AcknowledgeCommand) -> list[str]:
        with _engine(command.db_path) as engine:
            record = engine.acknowledge(command.index)
        return [
            f"Consumption recorded: index={record.last_consumed_index} "
            f"timestamp={record.timestamp}",
        ]


def load_article_file(path: Path) -> tuple[list[Article], int]:
    """Read a JSON array or JSON Lines file; return parsed articles and skipped count."""

    raw = path.read_text(encoding="utf-8")
    stripped = raw.lstrip()
    items: list[object]
    if stripped.startswith("["):
        parsed = json.loads(stripped)
        items = parsed if isinstance(parsed, list) else []
    else:
        items = [json.loads(line) for line in raw.splitlines() if line.strip()]

    articles: list[Article] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            articles.append(Article.from_payload({**item, "link": item.get("link") or ""}))
        except ValueError:
            skipped += 1
    return articles, skipped


def _result_lines(result: AdvanceResult) -> list[str]:
    if result.metadata is None:
        return [result.message or "No articles available"]
    metadata = result.metadata
    lines = [
        f"Cursor: index={metadata.current_index} cycle={metadata.cycle_count} "
        f"total={metadata.total_articles} new_cycle={'yes' if metadata.is_new_cycle else 'no'}",
    ]
    if result.article is None:
        lines.append(result.message or "No current article")
        return lines
    article = result.article
    lines.append(
        f"Current: {article.message_id} published_at={article.published_at} "
        f"title={article.title} link={article.link}",
    )
    return lines


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


@contextmanager
def _engine(db_path: Path | None, *, gated: bool | None = None) -> Iterator[CyclingEngine]:
    settings = Settings.from_env(db_path=db_path)
    if gated is not None:
        settings.engine.gated = gated
    settings.validate_for_engine()
    with _repository(settings) as repository:
        yield CyclingEngine(
            source=StoreArticleSource(repository),
            store=repository,
            settings=settings.engine,
        )
