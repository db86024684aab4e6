"""Snapshot ID to live ID remapping for backup restores.

Collections are processed in dependency order. Referenced collections
(payment methods, years, groups, items, assets) get their live IDs by
insert-and-return as soon as they are remapped, so later collections can
resolve their foreign keys. Leaf collections are only staged by ``remap``
and written in bulk by ``insert_pending``.

Payment methods and assets reference rows of their own kind. Those rows are
inserted with the self-reference cleared and linked in a second pass once
every live ID of the kind is known, so no insert ever points forward.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Sequence

from sqlalchemy import insert

from backup_validation import ReferentialIntegrityError
from config import get_settings
from database import Base, TenantScopedSession
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
    BACKUP_COLLECTIONS,
    ENTITY_LABELS,
    BackupSnapshot,
    LiveId,
    SnapshotId,
    SnapshotRow,
)

logger = logging.getLogger(__name__)


class IdMap:
    """Live IDs assigned to the snapshot IDs of one entity kind."""

    def __init__(self, label: str) -> None:
        self.label = label
        self._live_ids: dict[SnapshotId, LiveId] = {}

    def __len__(self) -> int:
        return len(self._live_ids)

    def __contains__(self, snapshot_id: object) -> bool:
        return snapshot_id in self._live_ids

    def __iter__(self) -> Iterator[SnapshotId]:
        return iter(self._live_ids)

    def record(self, snapshot_id: SnapshotId, live_id: LiveId) -> None:
        if snapshot_id in self._live_ids:
            raise ReferentialIntegrityError(
                f"Duplicate {self.label} backup ID {snapshot_id}",
                entity=self.label,
                backup_id=snapshot_id,
            )
        self._live_ids[snapshot_id] = live_id

    def resolve(self, snapshot_id: SnapshotId) -> LiveId:
        try:
            return self._live_ids[snapshot_id]
        except KeyError:
            raise ReferentialIntegrityError(
                f"Cannot remap unknown {self.label} backup ID {snapshot_id}",
                entity=self.label,
                backup_id=snapshot_id,
            ) from None

    def resolve_optional(self, snapshot_id: Optional[SnapshotId]) -> Optional[LiveId]:
        if snapshot_id is None:
            return None
        return self.resolve(snapshot_id)


@dataclass
class PendingRows:
    model: type[Base]
    snapshot_ids: list[Optional[SnapshotId]]
    values: list[dict[str, Any]]

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class RemapResult:
    id_maps: dict[str, IdMap]
    inserted: dict[str, list[Base]] = field(default_factory=dict)
    pending: dict[str, PendingRows] = field(default_factory=dict)

    def row_count(self, name: str) -> int:
        if name in self.inserted:
            return len(self.inserted[name])
        if name in self.pending:
            return len(self.pending[name])
        return 0


class SnapshotRemapper:
    def __init__(
        self,
        tx: TenantScopedSession,
        user_id: str,
        budget_id: int,
        *,
        chunk_size: Optional[int] = None,
    ) -> None:
        self.tx = tx
        self.user_id = user_id
        self.budget_id = budget_id
        self.chunk_size = chunk_size or get_settings().import_chunk_size

    def _reserve(
        self,
        rows: Sequence[SnapshotRow],
        id_map: IdMap,
        build: Callable[[Any], Base],
    ) -> list[Base]:
        objs = [build(row) for row in rows]
        self.tx.add_all(objs)
        self.tx.flush()
        for row, obj in zip(rows, objs):
            id_map.record(row.id, LiveId(obj.id))
        return objs

    def _link_self_references(
        self,
        rows: Sequence[SnapshotRow],
        objs: Sequence[Base],
        id_map: IdMap,
        attr: str,
    ) -> int:
        linked = 0
        for row, obj in zip(rows, objs):
            ref = getattr(row, attr)
            if ref is None:
                continue
            setattr(obj, attr, id_map.resolve(ref))
            linked += 1
        if linked:
            self.tx.flush()
        return linked

    @staticmethod
    def _stage(
        model: type[Base],
        rows: Sequence[SnapshotRow],
        to_values: Callable[[Any], dict[str, Any]],
    ) -> PendingRows:
        return PendingRows(
            model=model,
            snapshot_ids=[row.id for row in rows],
            values=[to_values(row) for row in rows],
        )

    def remap(self, snapshot: BackupSnapshot) -> RemapResult:
        maps = {name: IdMap(ENTITY_LABELS[name]) for name in BACKUP_COLLECTIONS}
        result = RemapResult(id_maps=maps)
        pms = maps["paymentMethods"]
        years = maps["budgetYears"]
        groups = maps["budgetGroups"]
        items = maps["budgetItems"]
        assets = maps["assets"]

        result.inserted["paymentMethods"] = self._reserve(
            snapshot.payment_methods,
            pms,
            lambda pm: PaymentMethod(
                user_id=self.user_id,
                name=pm.name,
                institution=pm.institution,
                sort_order=pm.sort_order,
                is_savings_account=pm.is_savings_account,
                savings_type=pm.savings_type,
                settlement_day=pm.settlement_day,
                linked_payment_method_id=None,
            ),
        )
        linked = self._link_self_references(
            snapshot.payment_methods,
            result.inserted["paymentMethods"],
            pms,
            "linked_payment_method_id",
        )
        logger.debug(f"backup_remap: paymentMethods={len(pms)} linked={linked}")

        result.inserted["budgetYears"] = self._reserve(
            snapshot.budget_years,
            years,
            lambda y: BudgetYear(
                budget_id=self.budget_id,
                year=y.year,
                initial_balance=y.initial_balance,
            ),
        )

        result.inserted["budgetGroups"] = self._reserve(
            snapshot.budget_groups,
            groups,
            lambda g: BudgetGroup(
                budget_id=self.budget_id,
                name=g.name,
                slug=g.slug,
                type=g.type,
                sort_order=g.sort_order,
            ),
        )

        result.inserted["budgetItems"] = self._reserve(
            snapshot.budget_items,
            items,
            lambda i: BudgetItem(
                year_id=years.resolve(i.year_id),
                group_id=groups.resolve_optional(i.group_id),
                name=i.name,
                slug=i.slug,
                sort_order=i.sort_order,
                yearly_budget=i.yearly_budget,
                savings_account_id=pms.resolve_optional(i.savings_account_id),
            ),
        )

        result.pending["monthlyValues"] = self._stage(
            MonthlyValue,
            snapshot.monthly_values,
            lambda mv: {
                "item_id": items.resolve(mv.item_id),
                "month": mv.month,
                "budget": mv.budget,
                "actual": mv.actual,
            },
        )

        result.pending["transactions"] = self._stage(
            Transaction,
            snapshot.transactions,
            lambda t: {
                "year_id": years.resolve(t.year_id),
                "item_id": items.resolve_optional(t.item_id),
                "date": t.date,
                "description": t.description,
                "comment": t.comment,
                "third_party": t.third_party,
                "payment_method_id": pms.resolve(t.payment_method_id),
                "amount": t.amount,
                "accounting_month": t.accounting_month,
                "accounting_year": t.accounting_year,
                "warning": t.warning,
            },
        )

        result.inserted["assets"] = self._reserve(
            snapshot.assets,
            assets,
            lambda a: Asset(
                budget_id=self.budget_id,
                name=a.name,
                sort_order=a.sort_order,
                is_system=a.is_system,
                is_debt=a.is_debt,
                parent_asset_id=None,
                savings_type=a.savings_type,
            ),
        )
        linked = self._link_self_references(
            snapshot.assets, result.inserted["assets"], assets, "parent_asset_id"
        )
        logger.debug(f"backup_remap: assets={len(assets)} linked={linked}")

        result.pending["assetValues"] = self._stage(
            AssetValue,
            snapshot.asset_values,
            lambda av: {
                "asset_id": assets.resolve(av.asset_id),
                "year_id": years.resolve(av.year_id),
                "value": av.value,
            },
        )

        result.pending["transfers"] = self._stage(
            Transfer,
            snapshot.transfers,
            lambda xf: {
                "year_id": years.resolve(xf.year_id),
                "date": xf.date,
                "amount": xf.amount,
                "description": xf.description,
                "source_account_id": pms.resolve(xf.source_account_id),
                "destination_account_id": pms.resolve(xf.destination_account_id),
                "accounting_month": xf.accounting_month,
                "accounting_year": xf.accounting_year,
            },
        )

        result.pending["accountBalances"] = self._stage(
            AccountBalance,
            snapshot.account_balances,
            lambda ab: {
                "year_id": years.resolve(ab.year_id),
                "payment_method_id": pms.resolve(ab.payment_method_id),
                "initial_balance": ab.initial_balance,
            },
        )
        return result

    def insert_pending(self, result: RemapResult) -> None:
        """Bulk insert the staged leaf rows, chunked, in dependency order."""
        for name in BACKUP_COLLECTIONS:
            pending = result.pending.get(name)
            if pending is None:
                continue
            id_map = result.id_maps[name]
            model = pending.model
            for start in range(0, len(pending), self.chunk_size):
                end = start + self.chunk_size
                live_ids = self.tx.scalars(
                    insert(model).returning(model.id, sort_by_parameter_order=True),
                    pending.values[start:end],
                ).all()
                for snapshot_id, live_id in zip(pending.snapshot_ids[start:end], live_ids):
                    if snapshot_id is not None:
                        id_map.record(snapshot_id, LiveId(live_id))
            logger.debug(f"backup_remap: {name}={len(pending)} inserted")
