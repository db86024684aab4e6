"""initial budget backup graph schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _money():
    # exact text on SQLite, NUMERIC on PostgreSQL; never a float column
    return sa.String(length=32).with_variant(sa.Numeric(12, 2), "postgresql")


def _timestamps():
    return (
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    )


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255)),
        *_timestamps(),
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("description", sa.String(length=500)),
        sa.Column("start_year", sa.Integer()),
        *_timestamps(),
    )

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("institution", sa.String(length=100)),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "is_savings_account", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("savings_type", sa.String(length=20)),
        sa.Column("settlement_day", sa.Integer()),
        sa.Column(
            "linked_payment_method_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "settlement_day IS NULL OR (settlement_day BETWEEN 1 AND 31)",
            name="ck_payment_method_settlement_day",
        ),
    )

    op.create_table(
        "budget_years",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("initial_balance", _money(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("budget_id", "year", name="uq_budget_year_budget_year"),
    )

    op.create_table(
        "budget_groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("income", "expense", "savings", name="budgetgrouptype"),
            nullable=False,
            server_default="expense",
        ),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("budget_id", "slug", name="uq_budget_group_budget_slug"),
    )

    op.create_table(
        "budget_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "year_id",
            sa.Integer(),
            sa.ForeignKey("budget_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("budget_groups.id", ondelete="SET NULL"),
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("yearly_budget", _money(), nullable=False, server_default="0"),
        sa.Column(
            "savings_account_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="CASCADE"),
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "year_id", "group_id", "slug", name="uq_budget_item_year_group_slug"
        ),
    )

    op.create_table(
        "monthly_values",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("budget_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("budget", _money(), nullable=False, server_default="0"),
        sa.Column("actual", _money(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("item_id", "month", name="uq_monthly_value_item_month"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_monthly_value_month"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "year_id",
            sa.Integer(),
            sa.ForeignKey("budget_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("budget_items.id", ondelete="SET NULL"),
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column("comment", sa.String(length=500)),
        sa.Column("third_party", sa.String(length=200)),
        sa.Column(
            "payment_method_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("accounting_month", sa.Integer(), nullable=False),
        sa.Column("accounting_year", sa.Integer(), nullable=False),
        sa.Column("warning", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_transactions_year_id", "transactions", ["year_id"])

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_debt", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "parent_asset_id",
            sa.Integer(),
            sa.ForeignKey("assets.id", ondelete="SET NULL"),
        ),
        sa.Column("savings_type", sa.String(length=20)),
        *_timestamps(),
        sa.UniqueConstraint(
            "budget_id", "name", "is_debt", name="uq_asset_budget_name_debt"
        ),
    )

    op.create_table(
        "asset_values",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "asset_id",
            sa.Integer(),
            sa.ForeignKey("assets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "year_id",
            sa.Integer(),
            sa.ForeignKey("budget_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", _money(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("asset_id", "year_id", name="uq_asset_value_asset_year"),
    )

    op.create_table(
        "transfers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "year_id",
            sa.Integer(),
            sa.ForeignKey("budget_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column(
            "source_account_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "destination_account_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("accounting_month", sa.Integer(), nullable=False),
        sa.Column("accounting_year", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "account_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "year_id",
            sa.Integer(),
            sa.ForeignKey("budget_years.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "payment_method_id",
            sa.Integer(),
            sa.ForeignKey("payment_methods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("initial_balance", _money(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "year_id", "payment_method_id", name="uq_account_balance_year_payment_method"
        ),
    )


def downgrade():
    op.drop_table("account_balances")
    op.drop_table("transfers")
    op.drop_table("asset_values")
    op.drop_table("assets")
    op.drop_index("ix_transactions_year_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("monthly_values")
    op.drop_table("budget_items")
    op.drop_table("budget_groups")
    op.drop_table("budget_years")
    op.drop_table("payment_methods")
    op.drop_table("budgets")
    op.drop_table("users")
    sa.Enum(name="budgetgrouptype").drop(op.get_bind(), checkfirst=True)
