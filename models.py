import uuid
import datetime as dt
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from database import Base


class BudgetGroupType(str, Enum):
    income = "income"
    expense = "expense"
    savings = "savings"


def parse_decimal_string(value: str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Decimal amounts must be strings, not floats")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal amount: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"Invalid decimal amount: {value!r}")
    return parsed


class DecimalString(TypeDecorator):
    """Exact decimal amount whose Python value is a string.

    PostgreSQL stores NUMERIC(12, 2); other dialects keep the text verbatim
    so nothing is ever routed through a float.
    """

    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(12, 2, asdecimal=True))
        return dialect.type_descriptor(String(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        parsed = parse_decimal_string(value)
        if dialect.name == "postgresql":
            return parsed
        return value if isinstance(value, str) else str(parsed)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return str(value)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))
    start_year: Mapped[Optional[int]] = mapped_column(Integer)


class PaymentMethod(Base, TimestampMixin):
    __tablename__ = "payment_methods"
    __table_args__ = (
        CheckConstraint(
            "settlement_day IS NULL OR (settlement_day BETWEEN 1 AND 31)",
            name="ck_payment_method_settlement_day",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    institution: Mapped[Optional[str]] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_savings_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    savings_type: Mapped[Optional[str]] = mapped_column(String(20))
    # billing cycle for month N+1 starts on this day of month N
    settlement_day: Mapped[Optional[int]] = mapped_column(Integer)
    linked_payment_method_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="SET NULL")
    )


class BudgetYear(Base, TimestampMixin):
    __tablename__ = "budget_years"
    __table_args__ = (
        UniqueConstraint("budget_id", "year", name="uq_budget_year_budget_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    initial_balance: Mapped[str] = mapped_column(
        DecimalString(), default="0", nullable=False
    )


class BudgetGroup(Base, TimestampMixin):
    __tablename__ = "budget_groups"
    __table_args__ = (
        UniqueConstraint("budget_id", "slug", name="uq_budget_group_budget_slug"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[BudgetGroupType] = mapped_column(
        SAEnum(BudgetGroupType), default=BudgetGroupType.expense, nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class BudgetItem(Base, TimestampMixin):
    __tablename__ = "budget_items"
    __table_args__ = (
        UniqueConstraint(
            "year_id", "group_id", "slug", name="uq_budget_item_year_group_slug"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year_id: Mapped[int] = mapped_column(
        ForeignKey("budget_years.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_groups.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    yearly_budget: Mapped[str] = mapped_column(
        DecimalString(), default="0", nullable=False
    )
    savings_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="CASCADE")
    )


class MonthlyValue(Base, TimestampMixin):
    __tablename__ = "monthly_values"
    __table_args__ = (
        UniqueConstraint("item_id", "month", name="uq_monthly_value_item_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_monthly_value_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("budget_items.id", ondelete="CASCADE"), nullable=False
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    budget: Mapped[str] = mapped_column(DecimalString(), default="0", nullable=False)
    actual: Mapped[str] = mapped_column(DecimalString(), default="0", nullable=False)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year_id: Mapped[int] = mapped_column(
        ForeignKey("budget_years.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budget_items.id", ondelete="SET NULL")
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    comment: Mapped[Optional[str]] = mapped_column(String(500))
    third_party: Mapped[Optional[str]] = mapped_column(String(200))
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[str] = mapped_column(DecimalString(), nullable=False)
    accounting_month: Mapped[int] = mapped_column(Integer, nullable=False)
    accounting_year: Mapped[int] = mapped_column(Integer, nullable=False)
    warning: Mapped[Optional[str]] = mapped_column(Text)


class Asset(Base, TimestampMixin):
    __tablename__ = "assets"
    # an asset and a debt may share a name
    __table_args__ = (
        UniqueConstraint(
            "budget_id", "name", "is_debt", name="uq_asset_budget_name_debt"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_debt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parent_asset_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("assets.id", ondelete="SET NULL")
    )
    savings_type: Mapped[Optional[str]] = mapped_column(String(20))


class AssetValue(Base, TimestampMixin):
    __tablename__ = "asset_values"
    __table_args__ = (
        UniqueConstraint("asset_id", "year_id", name="uq_asset_value_asset_year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"), nullable=False
    )
    year_id: Mapped[int] = mapped_column(
        ForeignKey("budget_years.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[str] = mapped_column(DecimalString(), default="0", nullable=False)


class Transfer(Base, TimestampMixin):
    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year_id: Mapped[int] = mapped_column(
        ForeignKey("budget_years.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[str] = mapped_column(DecimalString(), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    source_account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="CASCADE"), nullable=False
    )
    destination_account_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="CASCADE"), nullable=False
    )
    accounting_month: Mapped[int] = mapped_column(Integer, nullable=False)
    accounting_year: Mapped[int] = mapped_column(Integer, nullable=False)


class AccountBalance(Base, TimestampMixin):
    __tablename__ = "account_balances"
    __table_args__ = (
        UniqueConstraint(
            "year_id", "payment_method_id", name="uq_account_balance_year_payment_method"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year_id: Mapped[int] = mapped_column(
        ForeignKey("budget_years.id", ondelete="CASCADE"), nullable=False
    )
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id", ondelete="CASCADE"), nullable=False
    )
    initial_balance: Mapped[str] = mapped_column(
        DecimalString(), default="0", nullable=False
    )
