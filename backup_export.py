from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select

from database import TenantScopedSession, ensure_tenant_scope
from models import (
    AccountBalance,
    Asset,
    AssetValue,
    BudgetGroup,
    BudgetItem,
    BudgetYear,
    MonthlyValue,
    PaymentMethod,
    Transaction,
    Transfer,
)
from schemas import (
    SCHEMA_VERSION,
    AccountBalanceRow,
    AssetRow,
    AssetValueRow,
    BackupSnapshot,
    BudgetGroupRow,
    BudgetItemRow,
    BudgetYearRow,
    MonthlyValueRow,
    PaymentMethodRow,
    TransactionRow,
    TransferRow,
)

logger = logging.getLogger(__name__)


def build_snapshot(
    tx: TenantScopedSession, user_id: str, budget_id: int
) -> BackupSnapshot:
    """Read the tenant's whole backup graph into a snapshot.

    Live IDs double as snapshot IDs; they are only rewritten on import.
    """
    ensure_tenant_scope(tx, user_id, budget_id)

    year_ids = select(BudgetYear.id).where(BudgetYear.budget_id == budget_id)
    item_ids = select(BudgetItem.id).where(BudgetItem.year_id.in_(year_ids))
    asset_ids = select(Asset.id).where(Asset.budget_id == budget_id)

    payment_methods = tx.scalars(
        select(PaymentMethod)
        .where(PaymentMethod.user_id == user_id)
        .order_by(PaymentMethod.sort_order, PaymentMethod.id)
    ).all()
    years = tx.scalars(
        select(BudgetYear)
        .where(BudgetYear.budget_id == budget_id)
        .order_by(BudgetYear.year)
    ).all()
    groups = tx.scalars(
        select(BudgetGroup)
        .where(BudgetGroup.budget_id == budget_id)
        .order_by(BudgetGroup.sort_order, BudgetGroup.id)
    ).all()
    items = tx.scalars(
        select(BudgetItem)
        .where(BudgetItem.year_id.in_(year_ids))
        .order_by(BudgetItem.sort_order, BudgetItem.id)
    ).all()
    monthly_values = tx.scalars(
        select(MonthlyValue)
        .where(MonthlyValue.item_id.in_(item_ids))
        .order_by(MonthlyValue.id)
    ).all()
    transactions = tx.scalars(
        select(Transaction)
        .where(Transaction.year_id.in_(year_ids))
        .order_by(Transaction.id)
    ).all()
    assets = tx.scalars(
        select(Asset)
        .where(Asset.budget_id == budget_id)
        .order_by(Asset.sort_order, Asset.id)
    ).all()
    asset_values = tx.scalars(
        select(AssetValue)
        .where(AssetValue.asset_id.in_(asset_ids))
        .order_by(AssetValue.id)
    ).all()
    transfers = tx.scalars(
        select(Transfer).where(Transfer.year_id.in_(year_ids)).order_by(Transfer.id)
    ).all()
    account_balances = tx.scalars(
        select(AccountBalance)
        .where(AccountBalance.year_id.in_(year_ids))
        .order_by(AccountBalance.id)
    ).all()

    return BackupSnapshot(
        schema_version=SCHEMA_VERSION,
        exported_at=datetime.now(timezone.utc).isoformat(),
        payment_methods=[PaymentMethodRow.model_validate(pm) for pm in payment_methods],
        budget_years=[BudgetYearRow.model_validate(y) for y in years],
        budget_groups=[BudgetGroupRow.model_validate(g) for g in groups],
        budget_items=[BudgetItemRow.model_validate(i) for i in items],
        monthly_values=[MonthlyValueRow.model_validate(mv) for mv in monthly_values],
        transactions=[TransactionRow.model_validate(t) for t in transactions],
        assets=[AssetRow.model_validate(a) for a in assets],
        asset_values=[AssetValueRow.model_validate(av) for av in asset_values],
        transfers=[TransferRow.model_validate(xf) for xf in transfers],
        account_balances=[
            AccountBalanceRow.model_validate(ab) for ab in account_balances
        ],
    )


def export_backup(
    tx: TenantScopedSession, user_id: str, budget_id: int
) -> dict[str, Any]:
    snapshot = build_snapshot(tx, user_id, budget_id)
    payload = snapshot.model_dump(mode="json", by_alias=True)
    counts = " ".join(
        f"{name}={len(rows)}"
        for name, rows in payload.items()
        if isinstance(rows, list)
    )
    logger.info(f"backup_export: user_id={user_id} budget_id={budget_id} {counts}")
    return payload
