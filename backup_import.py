"""Destructive restore of a backup snapshot into one tenant.

The caller's ``tenant_scope`` owns the transaction: this module never
commits or rolls back. Any error raised here propagates so the whole
restore is discarded and the tenant keeps its previous data.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from sqlalchemy import delete, or_, select

from backup_remap import SnapshotRemapper
from backup_validation import validate_backup_payload
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
from schemas import BACKUP_COLLECTIONS, COLLECTION_FIELDS, BackupSnapshot, ImportSummary

logger = logging.getLogger(__name__)


class ImportStage(str, Enum):
    received = "received"
    validating = "validating"
    clearing = "clearing"
    remapping = "remapping"
    inserting = "inserting"
    # handed back to the caller's transaction for commit
    committed = "committed"
    aborted = "aborted"


def clear_tenant_data(
    tx: TenantScopedSession, user_id: str, budget_id: int
) -> dict[str, int]:
    """Delete the tenant's backup graph, children before parents."""
    year_ids = select(BudgetYear.id).where(BudgetYear.budget_id == budget_id)
    item_ids = select(BudgetItem.id).where(BudgetItem.year_id.in_(year_ids))
    asset_ids = select(Asset.id).where(Asset.budget_id == budget_id)

    statements = (
        ("transfers", delete(Transfer).where(Transfer.year_id.in_(year_ids))),
        (
            "accountBalances",
            delete(AccountBalance).where(AccountBalance.year_id.in_(year_ids)),
        ),
        ("transactions", delete(Transaction).where(Transaction.year_id.in_(year_ids))),
        ("monthlyValues", delete(MonthlyValue).where(MonthlyValue.item_id.in_(item_ids))),
        ("budgetItems", delete(BudgetItem).where(BudgetItem.year_id.in_(year_ids))),
        ("budgetGroups", delete(BudgetGroup).where(BudgetGroup.budget_id == budget_id)),
        (
            "assetValues",
            delete(AssetValue).where(
                or_(AssetValue.asset_id.in_(asset_ids), AssetValue.year_id.in_(year_ids))
            ),
        ),
        ("assets", delete(Asset).where(Asset.budget_id == budget_id)),
        ("budgetYears", delete(BudgetYear).where(BudgetYear.budget_id == budget_id)),
        # user-owned, not budget-owned
        ("paymentMethods", delete(PaymentMethod).where(PaymentMethod.user_id == user_id)),
    )

    removed: dict[str, int] = {}
    for name, stmt in statements:
        result = tx.execute(stmt.execution_options(synchronize_session="fetch"))
        removed[name] = result.rowcount
    return removed


def summarize(snapshot: BackupSnapshot) -> ImportSummary:
    return ImportSummary(
        **{
            COLLECTION_FIELDS[name]: len(snapshot.collection(name))
            for name in BACKUP_COLLECTIONS
        }
    )


def import_backup(
    tx: TenantScopedSession, user_id: str, budget_id: int, payload: Any
) -> ImportSummary:
    """Replace the tenant's data with the snapshot in ``payload``.

    Every inserted row belongs to ``user_id``/``budget_id`` regardless of
    which tenant produced the snapshot. Validation runs before anything is
    deleted.
    """
    ensure_tenant_scope(tx, user_id, budget_id)
    stage = ImportStage.received
    try:
        stage = ImportStage.validating
        snapshot = validate_backup_payload(payload)

        stage = ImportStage.clearing
        removed = clear_tenant_data(tx, user_id, budget_id)
        logger.info(
            f"backup_import: stage={stage.value} user_id={user_id} "
            f"budget_id={budget_id} removed={sum(removed.values())}"
        )

        stage = ImportStage.remapping
        remapper = SnapshotRemapper(tx, user_id, budget_id)
        result = remapper.remap(snapshot)

        stage = ImportStage.inserting
        remapper.insert_pending(result)
        tx.flush()
    except Exception as exc:
        logger.warning(
            f"backup_import: stage={ImportStage.aborted.value} failed_during={stage.value} "
            f"user_id={user_id} budget_id={budget_id} error={type(exc).__name__}"
        )
        raise

    summary = summarize(snapshot)
    logger.info(
        f"backup_import: stage={ImportStage.committed.value} user_id={user_id} "
        f"budget_id={budget_id} rows={sum(summary.model_dump().values())}"
    )
    return summary
