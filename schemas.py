import datetime as dt
import re
from typing import Annotated, NewType, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import BudgetGroupType, parse_decimal_string

SCHEMA_VERSION = 1

# Identifiers inside a snapshot and identifiers assigned by the database live
# in different spaces; the remapper is the only place that converts.
SnapshotId = NewType("SnapshotId", int)
LiveId = NewType("LiveId", int)


# NUMERIC(12, 2): at most ten integer digits and two fraction digits, no exponent
_AMOUNT_PATTERN = re.compile(r"-?\d{1,10}(\.\d{1,2})?")


def _check_decimal(value: str) -> str:
    parse_decimal_string(value)
    if not _AMOUNT_PATTERN.fullmatch(value):
        raise ValueError(
            "amount must be a plain decimal with at most 10 integer digits "
            "and 2 decimal places"
        )
    return value


DecimalStr = Annotated[str, Field(max_length=32), AfterValidator(_check_decimal)]
# range of the INTEGER columns
ColumnInt = Annotated[int, Field(ge=-(2**31), le=2**31 - 1)]
SnapshotRef = Annotated[SnapshotId, Field(strict=True)]
Month = Annotated[int, Field(ge=1, le=12)]


class SnapshotRow(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="ignore",
    )


class PaymentMethodRow(SnapshotRow):
    id: SnapshotRef
    name: str = Field(..., max_length=100)
    institution: Optional[str] = Field(default=None, max_length=100)
    sort_order: ColumnInt = 0
    is_savings_account: bool = False
    savings_type: Optional[str] = Field(default=None, max_length=20)
    settlement_day: Optional[int] = Field(default=None, ge=1, le=31)
    linked_payment_method_id: Optional[SnapshotRef] = None


class BudgetYearRow(SnapshotRow):
    id: SnapshotRef
    year: int = Field(..., ge=1, le=9999)
    initial_balance: DecimalStr = "0"


class BudgetGroupRow(SnapshotRow):
    id: SnapshotRef
    name: str = Field(..., max_length=100)
    slug: str = Field(..., max_length=100)
    type: BudgetGroupType = BudgetGroupType.expense
    sort_order: ColumnInt = 0


class BudgetItemRow(SnapshotRow):
    id: SnapshotRef
    year_id: SnapshotRef
    group_id: Optional[SnapshotRef] = None
    name: str = Field(..., max_length=200)
    slug: str = Field(..., max_length=200)
    sort_order: ColumnInt = 0
    yearly_budget: DecimalStr = "0"
    savings_account_id: Optional[SnapshotRef] = None


class MonthlyValueRow(SnapshotRow):
    id: Optional[SnapshotRef] = None
    item_id: SnapshotRef
    month: Month
    budget: DecimalStr = "0"
    actual: DecimalStr = "0"


class TransactionRow(SnapshotRow):
    id: Optional[SnapshotRef] = None
    year_id: SnapshotRef
    item_id: Optional[SnapshotRef] = None
    date: dt.date
    description: Optional[str] = Field(default=None, max_length=500)
    comment: Optional[str] = Field(default=None, max_length=500)
    third_party: Optional[str] = Field(default=None, max_length=200)
    payment_method_id: SnapshotRef
    amount: DecimalStr
    accounting_month: Month
    accounting_year: ColumnInt
    warning: Optional[str] = None


class AssetRow(SnapshotRow):
    id: SnapshotRef
    name: str = Field(..., max_length=200)
    sort_order: ColumnInt = 0
    is_system: bool = False
    is_debt: bool = False
    parent_asset_id: Optional[SnapshotRef] = None
    savings_type: Optional[str] = Field(default=None, max_length=20)


class AssetValueRow(SnapshotRow):
    id: Optional[SnapshotRef] = None
    asset_id: SnapshotRef
    year_id: SnapshotRef
    value: DecimalStr


class TransferRow(SnapshotRow):
    id: Optional[SnapshotRef] = None
    year_id: SnapshotRef
    date: dt.date
    amount: DecimalStr
    description: Optional[str] = Field(default=None, max_length=500)
    source_account_id: SnapshotRef
    destination_account_id: SnapshotRef
    accounting_month: Month
    accounting_year: ColumnInt


class AccountBalanceRow(SnapshotRow):
    id: Optional[SnapshotRef] = None
    year_id: SnapshotRef
    payment_method_id: SnapshotRef
    initial_balance: DecimalStr = "0"


class BackupSnapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: int = SCHEMA_VERSION
    exported_at: Optional[str] = None
    payment_methods: list[PaymentMethodRow] = Field(default_factory=list)
    budget_years: list[BudgetYearRow] = Field(default_factory=list)
    budget_groups: list[BudgetGroupRow] = Field(default_factory=list)
    budget_items: list[BudgetItemRow] = Field(default_factory=list)
    monthly_values: list[MonthlyValueRow] = Field(default_factory=list)
    transactions: list[TransactionRow] = Field(default_factory=list)
    assets: list[AssetRow] = Field(default_factory=list)
    asset_values: list[AssetValueRow] = Field(default_factory=list)
    transfers: list[TransferRow] = Field(default_factory=list)
    account_balances: list[AccountBalanceRow] = Field(default_factory=list)

    def collection(self, name: str) -> list[SnapshotRow]:
        return getattr(self, COLLECTION_FIELDS[name])


class ImportSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payment_methods: int = 0
    budget_years: int = 0
    budget_groups: int = 0
    budget_items: int = 0
    monthly_values: int = 0
    transactions: int = 0
    assets: int = 0
    asset_values: int = 0
    transfers: int = 0
    account_balances: int = 0


# Dependency order: every collection only references collections before it,
# apart from the self-references on payment methods and assets.
BACKUP_COLLECTIONS: tuple[str, ...] = (
    "paymentMethods",
    "budgetYears",
    "budgetGroups",
    "budgetItems",
    "monthlyValues",
    "transactions",
    "assets",
    "assetValues",
    "transfers",
    "accountBalances",
)

COLLECTION_FIELDS: dict[str, str] = {
    "paymentMethods": "payment_methods",
    "budgetYears": "budget_years",
    "budgetGroups": "budget_groups",
    "budgetItems": "budget_items",
    "monthlyValues": "monthly_values",
    "transactions": "transactions",
    "assets": "assets",
    "assetValues": "asset_values",
    "transfers": "transfers",
    "accountBalances": "account_balances",
}

ROW_MODELS: dict[str, type[SnapshotRow]] = {
    "paymentMethods": PaymentMethodRow,
    "budgetYears": BudgetYearRow,
    "budgetGroups": BudgetGroupRow,
    "budgetItems": BudgetItemRow,
    "monthlyValues": MonthlyValueRow,
    "transactions": TransactionRow,
    "assets": AssetRow,
    "assetValues": AssetValueRow,
    "transfers": TransferRow,
    "accountBalances": AccountBalanceRow,
}

# Singular names used in error messages ("unknown year backup ID 7").
ENTITY_LABELS: dict[str, str] = {
    "paymentMethods": "payment method",
    "budgetYears": "year",
    "budgetGroups": "group",
    "budgetItems": "item",
    "monthlyValues": "monthly value",
    "transactions": "transaction",
    "assets": "asset",
    "assetValues": "asset value",
    "transfers": "transfer",
    "accountBalances": "account balance",
}
