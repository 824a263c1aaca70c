"""ledger schema

Revision ID: 202610160900
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610160900"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPE = sa.Enum("income", "expense", "transfer", name="transactiontype")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("cash", "bank", "card", "investment", name="accounttype"),
            nullable=False,
        ),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "initial_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "exclude_from_total",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("archived_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
        sa.CheckConstraint("type != 'transfer'", name="ck_category_type_not_transfer"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("to_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("note", sa.Text()),
        sa.Column("location", sa.String(length=200)),
        sa.Column(
            "exclude_from_reports",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "(type = 'transfer' AND to_account_id IS NOT NULL AND category_id IS NULL)"
            " OR (type != 'transfer' AND to_account_id IS NULL)",
            name="ck_transactions_transfer_shape",
        ),
    )
    op.create_index(
        "ix_transactions_user_occurred", "transactions", ["user_id", "occurred_at"]
    )
    op.create_index(
        "ix_transactions_user_account", "transactions", ["user_id", "account_id"]
    )

    op.create_table(
        "budget_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column(
            "period", sa.Enum("week", "month", name="goalperiod"), nullable=False
        ),
        *_timestamps(),
        sa.CheckConstraint("target_cents > 0", name="ck_budget_goal_target_positive"),
    )

    op.create_table(
        "player_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "transactions_logged", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("streak_updated_at", sa.DateTime()),
        sa.Column("daily_budget_awarded_on", sa.Date()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_player_stats_user"),
    )


def downgrade():
    op.drop_table("player_stats")
    op.drop_table("budget_goals")
    op.drop_index("ix_transactions_user_account", table_name="transactions")
    op.drop_index("ix_transactions_user_occurred", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_table("accounts")
