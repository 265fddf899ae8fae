"""SQLModel-backed storage for articles, cursor state and the cycle article map."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, delete, select

from newswire.storage.alembic_runner import current_revision, upgrade_head
from newswire.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    utc_now,
)
from newswire.storage.sqlmodel_models import (
    ConsumptionRow,
    CursorRecord,
    CycleArticleRow,
    StoredArticle,
)
from newswire.wire.models import (
    Article,
    ConsumptionRecord,
    CursorConflictError,
    CursorState,
    CycleEntry,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ArticleImportResult:
    """Counters from an article import."""

    inserted: int = 0
    updated: int = 0


class SQLiteRepository:
    """Facade that persists wire entities using SQLModel and Alembic."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def schema_revision(self) -> str | None:
        return current_revision(self.db_path)

    def upsert_articles(self, articles: list[Article]) -> ArticleImportResult:
        """Insert new articles at the end of the scan order, update existing ones in place."""

        result = ArticleImportResult()
        with Session(self.engine) as session:
            for article in articles:
                now = utc_now()
                row = session.exec(
                    select(StoredArticle).where(StoredArticle.message_id == article.message_id),
                ).one_or_none()
                if row is None:
                    row = StoredArticle(
                        message_id=article.message_id,
                        created_at=now,
                        updated_at=now,
                    )
                    result.inserted += 1
                else:
                    row.updated_at = now
                    result.updated += 1
                row.link = article.link
                row.title = article.title
                row.description = article.description
                row.location = article.location
                row.extra_json = json.dumps(article.extra, ensure_ascii=False, default=str)
                session.add(row)
            session.commit()
        return result

    def scan_articles(self) -> list[Article]:
        """All stored articles in insertion order, including ones with invalid links."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(StoredArticle).order_by(col(StoredArticle.position)),
            ).all()
        return [_article_from_row(row) for row in rows]

    def load_cursor(self, counter_key: str) -> CursorState | None:
        with Session(self.engine) as session:
            row = session.get(CursorRecord, counter_key)
            if row is None:
                return None
            return _cursor_from_row(row)

    def commit_advance(
        self,
        counter_key: str,
        *,
        cursor: CursorState,
        expected_version: int | None,
        entry: CycleEntry | None,
    ) -> CursorState:
        """Conditionally write the cursor and first-sight entry in one transaction."""

        with Session(self.engine) as session:
            try:
                if entry is not None:
                    _add_entry_if_absent(session, counter_key, cursor.cycle_count, entry)
                if expected_version is None:
                    session.add(
                        CursorRecord(
                            counter_key=counter_key,
                            current_index=cursor.current_index,
                            cycle_count=cursor.cycle_count,
                            last_updated=cursor.last_updated,
                            version=cursor.version,
                        ),
                    )
                else:
                    outcome = session.exec(  # type: ignore[call-overload]
                        sa_update(CursorRecord)
                        .where(
                            col(CursorRecord.counter_key) == counter_key,
                            col(CursorRecord.version) == expected_version,
                        )
                        .values(
                            current_index=cursor.current_index,
                            cycle_count=cursor.cycle_count,
                            last_updated=cursor.last_updated,
                            version=cursor.version,
                        ),
                    )
                    if outcome.rowcount != 1:
                        session.rollback()
                        raise CursorConflictError(
                            f"Cursor {counter_key!r} no longer at version {expected_version}",
                        )
                session.commit()
            except IntegrityError as error:
                # Lost the insert race for the cursor or for the cycle entry.
                session.rollback()
                raise CursorConflictError(
                    f"Cursor {counter_key!r} was created concurrently",
                ) from error
        return cursor

    def load_cycle_entries(self, counter_key: str, cycle_count: int) -> dict[str, CycleEntry]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(CycleArticleRow).where(
                    CycleArticleRow.counter_key == counter_key,
                    CycleArticleRow.cycle_count == cycle_count,
                ),
            ).all()
        return {
            row.message_id: CycleEntry(
                message_id=row.message_id,
                cycle_index=row.cycle_index,
                publish_timestamp=row.publish_timestamp,
                published_at=row.published_at,
            )
            for row in rows
        }

    def count_cycle_entries(self, counter_key: str) -> int:
        """Entries across every retained cycle for a counter."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(CycleArticleRow.message_id).where(
                    CycleArticleRow.counter_key == counter_key,
                ),
            ).all()
        return len(rows)

    def load_consumption(self, counter_key: str) -> ConsumptionRecord | None:
        with Session(self.engine) as session:
            row = session.get(ConsumptionRow, counter_key)
            if row is None:
                return None
            return ConsumptionRecord(
                last_consumed_index=row.last_consumed_index,
                timestamp=row.timestamp,
            )

    def upsert_consumption(self, counter_key: str, record: ConsumptionRecord) -> None:
        with Session(self.engine) as session:
            row = session.get(ConsumptionRow, counter_key)
            if row is not None:
                row.last_consumed_index = record.last_consumed_index
                row.timestamp = record.timestamp
                session.add(row)
                session.commit()
                return

            session.add(
                ConsumptionRow(
                    counter_key=counter_key,
                    last_consumed_index=record.last_consumed_index,
                    timestamp=record.timestamp,
                ),
            )
            try:
                session.commit()
            except IntegrityError:
                # Another writer created the record first; overwrite it.
                session.rollback()
                session.exec(  # type: ignore[call-overload]
                    sa_update(ConsumptionRow)
                    .where(col(ConsumptionRow.counter_key) == counter_key)
                    .values(
                        last_consumed_index=record.last_consumed_index,
                        timestamp=record.timestamp,
                    ),
                )
                session.commit()

    def reset_cycle_state(self, counter_key: str, *, cursor: CursorState) -> None:
        """Rewind the cursor and drop every cycle entry and consumption record."""

        with Session(self.engine) as session:
            row = session.get(CursorRecord, counter_key)
            if row is None:
                row = CursorRecord(counter_key=counter_key)
                next_version = 0
            else:
                next_version = row.version + 1
            row.current_index = cursor.current_index
            row.cycle_count = cursor.cycle_count
            row.last_updated = cursor.last_updated
            row.version = next_version
            session.add(row)
            session.exec(  # type: ignore[call-overload]
                delete(CycleArticleRow).where(col(CycleArticleRow.counter_key) == counter_key),
            )
            session.exec(  # type: ignore[call-overload]
                delete(ConsumptionRow).where(col(ConsumptionRow.counter_key) == counter_key),
            )
            session.commit()
        logger.debug("Cleared cycle state for counter=%s.", counter_key)


def _cursor_from_row(row: CursorRecord) -> CursorState:
    return CursorState(
        current_index=row.current_index,
        cycle_count=row.cycle_count,
        last_updated=row.last_updated,
        version=row.version,
    )


def _article_from_row(row: StoredArticle) -> Article:
    try:
        extra = json.loads(row.extra_json or "{}")
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed extra_json for article %s.", row.message_id)
        extra = {}
    return Article(
        message_id=row.message_id,
        link=row.link or "",
        title=row.title,
        description=row.description,
        location=row.location,
        extra=extra if isinstance(extra, dict) else {},
    )


def _add_entry_if_absent(
    session: Session,
    counter_key: str,
    cycle_count: int,
    entry: CycleEntry,
) -> None:
    existing = session.get(CycleArticleRow, (counter_key, cycle_count, entry.message_id))
    if existing is not None:
        return
    session.add(
        CycleArticleRow(
            counter_key=counter_key,
            cycle_count=cycle_count,
            message_id=entry.message_id,
            cycle_index=entry.cycle_index,
            publish_timestamp=entry.publish_timestamp,
            published_at=entry.published_at,
        ),
    )
