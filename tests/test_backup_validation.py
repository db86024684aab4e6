import pytest

from backup_validation import (
    BackupPayloadError,
    InvalidBackupRow,
    MissingOrInvalidField,
    ReferentialIntegrityError,
    UnsupportedSchemaVersion,
    validate_backup_payload,
)
from schemas import BACKUP_COLLECTIONS


def make_payload(**collections):
    payload = {"schemaVersion": 1, "exportedAt": "2026-01-01T00:00:00+00:00"}
    for name in BACKUP_COLLECTIONS:
        payload[name] = collections.get(name, [])
    return payload


def pm(row_id, name="Checking", **extra):
    return {"id": row_id, "name": name, **extra}


def year(row_id, value=2024):
    return {"id": row_id, "year": value, "initialBalance": "0.00"}


def txn(**extra):
    row = {
        "yearId": 1,
        "date": "2024-01-15",
        "paymentMethodId": 1,
        "amount": "12.50",
        "accountingMonth": 1,
        "accountingYear": 2024,
    }
    row.update(extra)
    return row


def test_empty_payload_is_unsupported_version() -> None:
    with pytest.raises(UnsupportedSchemaVersion, match="Unsupported backup schema version"):
        validate_backup_payload({})


def test_future_schema_version_is_rejected() -> None:
    payload = make_payload()
    payload["schemaVersion"] = 99
    with pytest.raises(UnsupportedSchemaVersion) as excinfo:
        validate_backup_payload(payload)
    assert excinfo.value.code == "BACKUP_UNSUPPORTED_VERSION"
    assert str(excinfo.value) == "Unsupported backup schema version: 99. Expected: 1"


def test_boolean_schema_version_is_rejected() -> None:
    payload = make_payload()
    payload["schemaVersion"] = True
    with pytest.raises(UnsupportedSchemaVersion):
        validate_backup_payload(payload)


@pytest.mark.parametrize("payload", [None, [], "backup", 1])
def test_non_object_payload_is_rejected(payload) -> None:
    with pytest.raises(BackupPayloadError, match="Invalid backup payload"):
        validate_backup_payload(payload)


def test_missing_arrays_are_reported_by_name() -> None:
    with pytest.raises(MissingOrInvalidField) as excinfo:
        validate_backup_payload({"schemaVersion": 1})
    assert excinfo.value.field == "paymentMethods"
    assert excinfo.value.code == "BACKUP_INVALID_SCHEMA"
    assert 'Missing or invalid "paymentMethods" array' in str(excinfo.value)


def test_collection_that_is_not_an_array_is_rejected() -> None:
    payload = make_payload()
    payload["transfers"] = {"0": {}}
    with pytest.raises(MissingOrInvalidField, match='"transfers"'):
        validate_backup_payload(payload)


def test_empty_snapshot_is_valid() -> None:
    snapshot = validate_backup_payload(make_payload())
    assert snapshot.schema_version == 1
    assert snapshot.payment_methods == []
    assert snapshot.exported_at == "2026-01-01T00:00:00+00:00"


def test_unknown_year_reference_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        budgetItems=[{"id": 1, "yearId": 999, "name": "Rent", "slug": "rent"}],
    )
    with pytest.raises(ReferentialIntegrityError) as excinfo:
        validate_backup_payload(payload)
    assert "unknown year backup ID 999" in str(excinfo.value)
    assert excinfo.value.code == "BACKUP_INVALID_REFERENCE"
    assert excinfo.value.backup_id == 999


def test_transaction_with_unknown_payment_method_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transactions=[txn(paymentMethodId=42)],
    )
    with pytest.raises(ReferentialIntegrityError, match="unknown payment method backup ID 42"):
        validate_backup_payload(payload)


def test_transfer_with_unknown_destination_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transfers=[
            {
                "yearId": 1,
                "date": "2024-03-01",
                "amount": "300.00",
                "sourceAccountId": 1,
                "destinationAccountId": 7,
                "accountingMonth": 3,
                "accountingYear": 2024,
            }
        ],
    )
    with pytest.raises(ReferentialIntegrityError, match="unknown destination account backup ID 7"):
        validate_backup_payload(payload)


def test_asset_value_with_unknown_asset_is_rejected() -> None:
    payload = make_payload(
        budgetYears=[year(1)],
        assets=[{"id": 1, "name": "House"}],
        assetValues=[{"assetId": 2, "yearId": 1, "value": "10.00"}],
    )
    with pytest.raises(ReferentialIntegrityError, match="unknown asset backup ID 2"):
        validate_backup_payload(payload)


def test_duplicate_backup_ids_are_rejected() -> None:
    payload = make_payload(budgetYears=[year(1, 2024), year(1, 2025)])
    with pytest.raises(ReferentialIntegrityError, match="Duplicate year backup ID 1"):
        validate_backup_payload(payload)


def test_payment_method_linked_to_itself_is_rejected() -> None:
    payload = make_payload(paymentMethods=[pm(1, linkedPaymentMethodId=1)])
    with pytest.raises(ReferentialIntegrityError, match="references itself"):
        validate_backup_payload(payload)


def test_payment_method_link_cycle_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[
            pm(1, "Card A", linkedPaymentMethodId=2),
            pm(2, "Card B", linkedPaymentMethodId=3),
            pm(3, "Card C", linkedPaymentMethodId=1),
        ]
    )
    with pytest.raises(ReferentialIntegrityError, match="chain forms a cycle"):
        validate_backup_payload(payload)


def test_parent_asset_cycle_is_rejected() -> None:
    payload = make_payload(
        assets=[
            {"id": 1, "name": "A", "parentAssetId": 2},
            {"id": 2, "name": "B", "parentAssetId": 1},
        ]
    )
    with pytest.raises(ReferentialIntegrityError, match="Parent asset chain forms a cycle"):
        validate_backup_payload(payload)


def test_forward_links_and_long_chains_are_accepted() -> None:
    payload = make_payload(
        paymentMethods=[
            pm(1, "Card", linkedPaymentMethodId=2),
            pm(2, "Checking", linkedPaymentMethodId=3),
            pm(3, "Savings"),
        ],
        assets=[
            {"id": 5, "name": "Room", "parentAssetId": 6},
            {"id": 6, "name": "House", "parentAssetId": 7},
            {"id": 7, "name": "Real Estate"},
        ],
    )
    snapshot = validate_backup_payload(payload)
    assert [p.linked_payment_method_id for p in snapshot.payment_methods] == [2, 3, None]
    assert [a.parent_asset_id for a in snapshot.assets] == [6, 7, None]


def test_float_amount_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transactions=[txn(amount=12.5)],
    )
    with pytest.raises(InvalidBackupRow) as excinfo:
        validate_backup_payload(payload)
    assert excinfo.value.collection == "transactions"
    assert excinfo.value.index == 0


def test_malformed_decimal_string_is_rejected() -> None:
    payload = make_payload(budgetYears=[{"id": 1, "year": 2024, "initialBalance": "12,50"}])
    with pytest.raises(InvalidBackupRow, match='"budgetYears" entry at index 0'):
        validate_backup_payload(payload)


def test_string_reference_is_not_coerced() -> None:
    payload = make_payload(
        budgetYears=[year(1)],
        budgetItems=[{"id": 1, "yearId": "1", "name": "Rent", "slug": "rent"}],
    )
    with pytest.raises(InvalidBackupRow):
        validate_backup_payload(payload)


def test_non_object_row_is_rejected() -> None:
    payload = make_payload(budgetGroups=["groceries"])
    with pytest.raises(InvalidBackupRow, match="entry must be an object"):
        validate_backup_payload(payload)


def test_out_of_range_month_is_rejected() -> None:
    payload = make_payload(
        budgetYears=[year(1)],
        budgetItems=[{"id": 1, "yearId": 1, "name": "Rent", "slug": "rent"}],
        monthlyValues=[{"itemId": 1, "month": 13, "budget": "0", "actual": "0"}],
    )
    with pytest.raises(InvalidBackupRow, match='"monthlyValues" entry at index 0'):
        validate_backup_payload(payload)


def test_leaf_rows_may_omit_ids_and_unknown_fields_are_ignored() -> None:
    payload = make_payload(
        paymentMethods=[pm(1, userId="someone-else")],
        budgetYears=[year(1)],
        transactions=[txn(), txn(amount="-3.10")],
    )
    snapshot = validate_backup_payload(payload)
    assert [t.id for t in snapshot.transactions] == [None, None]
    assert [t.amount for t in snapshot.transactions] == ["12.50", "-3.10"]


def test_sort_order_beyond_column_range_is_rejected() -> None:
    payload = make_payload(
        budgetGroups=[{"id": 1, "name": "G", "slug": "g", "sortOrder": 2**70}]
    )
    with pytest.raises(InvalidBackupRow, match='"budgetGroups" entry at index 0'):
        validate_backup_payload(payload)


def test_accounting_year_beyond_column_range_is_rejected() -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transactions=[txn(accountingYear=2**31)],
    )
    with pytest.raises(InvalidBackupRow, match='"transactions" entry at index 0'):
        validate_backup_payload(payload)


@pytest.mark.parametrize("amount", ["1.005", "1e3", "99999999999999", "+5.00", ".50", "Infinity"])
def test_amounts_that_do_not_fit_two_decimal_places_are_rejected(amount) -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transactions=[txn(amount=amount)],
    )
    with pytest.raises(InvalidBackupRow):
        validate_backup_payload(payload)


@pytest.mark.parametrize("amount", ["0", "-1500.25", "9999999999.99", "3.1"])
def test_plain_decimal_amounts_are_accepted(amount) -> None:
    payload = make_payload(
        paymentMethods=[pm(1)],
        budgetYears=[year(1)],
        transactions=[txn(amount=amount)],
    )
    snapshot = validate_backup_payload(payload)
    assert snapshot.transactions[0].amount == amount
