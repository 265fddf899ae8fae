"""SQLModel ORM tables for wire storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, PrimaryKeyConstraint, Text
from sqlmodel import Field, SQLModel


class StoredArticle(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]

    position: int | None = Field(default=None, primary_key=True)
    message_id: str = Field(index=True, unique=True)
    link: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    title: str = ""
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    location: str = ""
    extra_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CursorRecord(SQLModel, table=True):
    __tablename__ = "cursor_states"  # type: ignore[bad-override]

    counter_key: str = Field(primary_key=True)
    current_index: int = -1
    cycle_count: int = 0
    last_updated: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    version: int = 0


class ConsumptionRow(SQLModel, table=True):
    __tablename__ = "consumption_records"  # type: ignore[bad-override]

    counter_key: str = Field(primary_key=True)
    last_consumed_index: int
    timestamp: int = Field(sa_column=Column(BigInteger, nullable=False))


class CycleArticleRow(SQLModel, table=True):
    __tablename__ = "cycle_articles"  # type: ignore[bad-override]
    __table_args__ = (
        PrimaryKeyConstraint(
            "counter_key",
            "cycle_count",
            "message_id",
            name="pk_cycle_articles",
        ),
    )

    counter_key: str = Field(index=True)
    cycle_count: int
    message_id: str
    cycle_index: int
    publish_timestamp: int = Field(sa_column=Column(BigInteger, nullable=False))
    published_at: str
