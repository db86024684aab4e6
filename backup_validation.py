"""Validation of externally supplied backup snapshots.

Everything here works on the in-memory payload only, so a broken or hostile
snapshot is rejected before the importer touches the database. Checks run
in three steps: schema version, collection shape (including each row's
fields), then referential integrity inside the snapshot itself.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from pydantic import ValidationError

from schemas import (
    BACKUP_COLLECTIONS,
    COLLECTION_FIELDS,
    ENTITY_LABELS,
    ROW_MODELS,
    SCHEMA_VERSION,
    BackupSnapshot,
    SnapshotId,
    SnapshotRow,
)


class BackupValidationError(ValueError):
    code = "BACKUP_INVALID"


class SchemaVersionError(BackupValidationError):
    code = "BACKUP_UNSUPPORTED_VERSION"


class UnsupportedSchemaVersion(SchemaVersionError):
    def __init__(self, version: Any) -> None:
        self.version = version
        super().__init__(
            f"Unsupported backup schema version: {version}. Expected: {SCHEMA_VERSION}"
        )


class ShapeError(BackupValidationError):
    code = "BACKUP_INVALID_SCHEMA"


class BackupPayloadError(ShapeError):
    pass


class MissingOrInvalidField(ShapeError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f'Missing or invalid "{field}" array in backup payload')


class InvalidBackupRow(ShapeError):
    def __init__(self, collection: str, index: int, detail: str) -> None:
        self.collection = collection
        self.index = index
        super().__init__(f'Invalid "{collection}" entry at index {index}: {detail}')


class ReferentialIntegrityError(BackupValidationError):
    code = "BACKUP_INVALID_REFERENCE"

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        backup_id: Optional[int] = None,
    ) -> None:
        self.entity = entity
        self.backup_id = backup_id
        super().__init__(message)


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"{location}: {first['msg']}"
    return first["msg"]


def _parse_rows(name: str, raw_rows: list) -> list[SnapshotRow]:
    model = ROW_MODELS[name]
    rows: list[SnapshotRow] = []
    for index, raw in enumerate(raw_rows):
        if not isinstance(raw, dict):
            raise InvalidBackupRow(name, index, "entry must be an object")
        try:
            rows.append(model.model_validate(raw))
        except ValidationError as exc:
            raise InvalidBackupRow(
                name, index, _describe_validation_error(exc)
            ) from exc
    return rows


def _collect_ids(name: str, rows: Iterable[SnapshotRow]) -> set[SnapshotId]:
    label = ENTITY_LABELS[name]
    seen: set[SnapshotId] = set()
    for row in rows:
        row_id = row.id
        if row_id is None:
            continue
        if row_id in seen:
            raise ReferentialIntegrityError(
                f"Duplicate {label} backup ID {row_id}",
                entity=label,
                backup_id=row_id,
            )
        seen.add(row_id)
    return seen


def _require(
    ids: set[SnapshotId],
    ref: Optional[SnapshotId],
    owner: str,
    entity: str,
) -> None:
    if ref is None or ref in ids:
        return
    raise ReferentialIntegrityError(
        f"{owner} references unknown {entity} backup ID {ref}",
        entity=entity,
        backup_id=ref,
    )


def _reject_self_link_cycles(
    links: dict[SnapshotId, Optional[SnapshotId]],
    names: dict[SnapshotId, str],
    owner_kind: str,
    entity: str,
) -> None:
    for row_id, target in links.items():
        if target == row_id:
            raise ReferentialIntegrityError(
                f'{owner_kind} "{names[row_id]}" references itself as {entity} '
                f"backup ID {row_id}",
                entity=entity,
                backup_id=row_id,
            )

    cleared: set[SnapshotId] = set()
    for start in links:
        path: list[SnapshotId] = []
        on_path: set[SnapshotId] = set()
        current: Optional[SnapshotId] = start
        while current is not None and current not in cleared:
            if current in on_path:
                raise ReferentialIntegrityError(
                    f"{entity.capitalize()} chain forms a cycle at backup ID {current}",
                    entity=entity,
                    backup_id=current,
                )
            path.append(current)
            on_path.add(current)
            current = links.get(current)
        cleared.update(path)


def _check_references(snapshot: BackupSnapshot) -> None:
    pm_ids = _collect_ids("paymentMethods", snapshot.payment_methods)
    year_ids = _collect_ids("budgetYears", snapshot.budget_years)
    group_ids = _collect_ids("budgetGroups", snapshot.budget_groups)
    item_ids = _collect_ids("budgetItems", snapshot.budget_items)
    asset_ids = _collect_ids("assets", snapshot.assets)
    for name in ("monthlyValues", "transactions", "assetValues", "transfers", "accountBalances"):
        _collect_ids(name, snapshot.collection(name))

    for pm in snapshot.payment_methods:
        _require(
            pm_ids,
            pm.linked_payment_method_id,
            f'Payment method "{pm.name}"',
            "linked payment method",
        )
    _reject_self_link_cycles(
        {pm.id: pm.linked_payment_method_id for pm in snapshot.payment_methods},
        {pm.id: pm.name for pm in snapshot.payment_methods},
        "Payment method",
        "linked payment method",
    )

    for item in snapshot.budget_items:
        owner = f'Budget item "{item.name}"'
        _require(year_ids, item.year_id, owner, "year")
        _require(group_ids, item.group_id, owner, "group")
        _require(pm_ids, item.savings_account_id, owner, "payment method")

    for mv in snapshot.monthly_values:
        _require(item_ids, mv.item_id, "Monthly value", "item")

    for txn in snapshot.transactions:
        _require(year_ids, txn.year_id, "Transaction", "year")
        _require(item_ids, txn.item_id, "Transaction", "item")
        _require(pm_ids, txn.payment_method_id, "Transaction", "payment method")

    for asset in snapshot.assets:
        _require(
            asset_ids, asset.parent_asset_id, f'Asset "{asset.name}"', "parent asset"
        )
    _reject_self_link_cycles(
        {asset.id: asset.parent_asset_id for asset in snapshot.assets},
        {asset.id: asset.name for asset in snapshot.assets},
        "Asset",
        "parent asset",
    )

    for av in snapshot.asset_values:
        _require(asset_ids, av.asset_id, "Asset value", "asset")
        _require(year_ids, av.year_id, "Asset value", "year")

    for xf in snapshot.transfers:
        _require(year_ids, xf.year_id, "Transfer", "year")
        _require(pm_ids, xf.source_account_id, "Transfer", "source account")
        _require(pm_ids, xf.destination_account_id, "Transfer", "destination account")

    for ab in snapshot.account_balances:
        _require(year_ids, ab.year_id, "Account balance", "year")
        _require(pm_ids, ab.payment_method_id, "Account balance", "payment method")


def validate_backup_payload(payload: Any) -> BackupSnapshot:
    """Check a raw payload and return it as a typed snapshot.

    Raises a ``BackupValidationError`` subclass describing the first
    problem found; the message is safe to show to the caller.
    """
    if not isinstance(payload, dict):
        raise BackupPayloadError("Invalid backup payload")

    version = payload.get("schemaVersion")
    # bool is an int subclass; True must not pass for version 1
    if type(version) is not int or version != SCHEMA_VERSION:
        raise UnsupportedSchemaVersion(version)

    for name in BACKUP_COLLECTIONS:
        if not isinstance(payload.get(name), list):
            raise MissingOrInvalidField(name)

    exported_at = payload.get("exportedAt")
    collections = {
        COLLECTION_FIELDS[name]: _parse_rows(name, payload[name])
        for name in BACKUP_COLLECTIONS
    }
    snapshot = BackupSnapshot.model_construct(
        schema_version=version,
        exported_at=exported_at if isinstance(exported_at, str) else None,
        **collections,
    )
    _check_references(snapshot)
    return snapshot
