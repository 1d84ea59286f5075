"""Create reward ledger tables

Revision ID: 0f3c9a1e7b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0f3c9a1e7b21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_tokens",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("current_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earned_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_spent_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "quest_streaks",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_completed_date", sa.Date(), nullable=True),
        sa.Column("weekly_quests", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_quests", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "token_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("character_id", sa.BigInteger(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("reference_id", sa.BigInteger(), nullable=True),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index(
        "ix_token_transactions_user_time", "token_transactions", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_token_transactions_reference",
        "token_transactions",
        ["reference_type", "reference_id"],
    )

    op.create_table(
        "quest_completions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("character_id", sa.BigInteger(), nullable=False),
        sa.Column("quest_id", sa.BigInteger(), nullable=False),
        sa.Column("quest_type", sa.String(20), nullable=False),
        sa.Column("ai_score", sa.Integer(), nullable=False),
        sa.Column("tokens_earned", sa.Integer(), nullable=False),
        sa.Column("bonus_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_quest_completions_user_time", "quest_completions", ["user_id", "completed_at"]
    )

    op.create_table(
        "shop_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("item_type", sa.String(30), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "token_purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("character_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "shop_item_id", sa.Integer(),
            sa.ForeignKey("shop_items.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_token_purchases_character_expiry",
        "token_purchases",
        ["character_id", "expires_at"],
    )

    op.create_table(
        "token_multiplier_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("multiplier", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column(
            "quest_types", postgresql.JSONB(), nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )
    op.create_index(
        "ix_token_events_window",
        "token_multiplier_events",
        ["is_active", "start_date", "end_date"],
    )


def downgrade() -> None:
    op.drop_index("ix_token_events_window", table_name="token_multiplier_events")
    op.drop_table("token_multiplier_events")
    op.drop_index("ix_token_purchases_character_expiry", table_name="token_purchases")
    op.drop_table("token_purchases")
    op.drop_table("shop_items")
    op.drop_index("ix_quest_completions_user_time", table_name="quest_completions")
    op.drop_table("quest_completions")
    op.drop_index("ix_token_transactions_reference", table_name="token_transactions")
    op.drop_index("ix_token_transactions_user_time", table_name="token_transactions")
    op.drop_table("token_transactions")
    op.drop_table("quest_streaks")
    op.drop_table("user_tokens")
