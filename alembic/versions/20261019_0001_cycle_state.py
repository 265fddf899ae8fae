"""Articles, cursor state, consumption records and cycle article map."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "articles",
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("message_id", sa.String(), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("title", sa.String(), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("location", sa.String(), nullable=False, server_default=""),
        sa.Column("extra_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("position"),
    )
    op.create_index("ix_articles_message_id", "articles", ["message_id"], unique=True)

    op.create_table(
        "cursor_states",
        sa.Column("counter_key", sa.String(), nullable=False),
        sa.Column("current_index", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("cycle_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("counter_key"),
    )

    op.create_table(
        "consumption_records",
        sa.Column("counter_key", sa.String(), nullable=False),
        sa.Column("last_consumed_index", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("counter_key"),
    )

    op.create_table(
        "cycle_articles",
        sa.Column("counter_key", sa.String(), nullable=False),
        sa.Column("cycle_count", sa.Integer(), nullable=False),
        sa.Column("message_id", sa.String(), nullable=False),
        sa.Column("cycle_index", sa.Integer(), nullable=False),
        sa.Column("publish_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("published_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint(
            "counter_key",
            "cycle_count",
            "message_id",
            name="pk_cycle_articles",
        ),
    )
    op.create_index("ix_cycle_articles_counter_key", "cycle_articles", ["counter_key"])


def downgrade() -> None:
    op.drop_index("ix_cycle_articles_counter_key", table_name="cycle_articles")
    op.drop_table("cycle_articles")
    op.drop_table("consumption_records")
    op.drop_table("cursor_states")
    op.drop_index("ix_articles_message_id", table_name="articles")
    op.drop_table("articles")
