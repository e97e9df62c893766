"""
Receipt classification, validation of reported outcomes, and the
all-or-nothing unit of work around a receipt.
"""

import pytest

from transferhub.errors import NotFoundError, ValidationError
from transferhub.extensions import db
from transferhub.models import (
    InventoryTransaction,
    TransferItemStatus,
    TransferStatus,
    WarehouseTransferLog,
)
from transferhub.services import reconciliation_service, transfer_service
from transferhub.services.transfer_service import classify_item, derive_transfer_status


@pytest.mark.parametrize("sent, received, rejected, disposed, expected", [
    (10, 10, 0, 0, TransferItemStatus.accepted),
    (10, 6, 4, 0, TransferItemStatus.partial_accepted),
    (10, 0, 10, 0, TransferItemStatus.rejected),
    (10, 0, 0, 10, TransferItemStatus.disposed),
    (10, 0, 4, 6, TransferItemStatus.pending),
    (10, 0, 0, 0, TransferItemStatus.pending),
    (10, 1, 0, 9, TransferItemStatus.partial_accepted),
])
def test_classify_item(sent, received, rejected, disposed, expected):
    assert classify_item(sent, received, rejected, disposed) == expected


@pytest.mark.parametrize("totals, expected", [
    ((10, 10, 0, 0), TransferStatus.received),
    ((10, 6, 4, 0), TransferStatus.partial_received),
    ((10, 0, 10, 0), TransferStatus.rejected),
    ((10, 0, 0, 3), TransferStatus.rejected),
    ((10, 0, 0, 0), TransferStatus.partial_received),
])
def test_derive_transfer_status(totals, expected):
    assert derive_transfer_status(*totals) == expected


@pytest.fixture
def in_transit(user, warehouse_a, warehouse_b, product, other_product, stock):
    stock(warehouse_a, product, 50)
    stock(warehouse_a, other_product, 50)
    transfer = transfer_service.initiate_transfer(
        source_warehouse_id=warehouse_a.id,
        target_warehouse_id=warehouse_b.id,
        items=[
            {"product_id": product.id, "quantity": 10},
            {"product_id": other_product.id, "quantity": 5},
        ],
        user_id=user.id,
    )
    return transfer_service.dispatch_transfer(transfer.id, user_id=user.id)


def _lines(transfer):
    first, second = transfer.items
    return first.id, second.id


def test_disposal_and_rejection_write_item_logs(in_transit, user):
    first, second = _lines(in_transit)

    received = transfer_service.receive_transfer(in_transit.id, user_id=user.id, receipt_notes="Checked", items=[
        {"item_id": first, "quantity_received": 7, "quantity_rejected": 3, "rejection_reason": "Torn"},
        {"item_id": second, "quantity_received": 0, "quantity_disposed": 5, "disposal_reason": "Spoiled"},
    ])

    assert received.status == TransferStatus.partial_received
    assert received.received_by == user.id
    assert received.received_at is not None
    assert received.receipt_notes == "Checked"
    assert [i.item_status for i in received.items] == [
        TransferItemStatus.partial_accepted,
        TransferItemStatus.disposed,
    ]
    assert received.items[0].rejection_reason == "Torn"
    assert received.items[1].disposal_reason == "Spoiled"

    logs = db.session.query(WarehouseTransferLog).filter_by(transfer_id=in_transit.id).all()
    item_logs = {log.transfer_item_id: log.action for log in logs if log.transfer_item_id}
    assert item_logs == {first: "item_rejected", second: "item_disposed"}

    summary = next(log for log in logs if log.action == "transfer_received")
    assert summary.previous_status == "in_transit"
    assert summary.new_status == "partial_received"
    assert summary.details == {"total_sent": 15, "total_received": 7, "total_rejected": 3, "total_disposed": 5}


def test_receipt_writes_ledger_rows(in_transit, user, warehouse_a, warehouse_b, product):
    first, second = _lines(in_transit)
    transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
        {"item_id": first, "quantity_received": 10},
        {"item_id": second, "quantity_received": 0, "quantity_rejected": 5, "rejection_reason": "Wrong SKU"},
    ])

    rows = db.session.query(InventoryTransaction).filter_by(transfer_id=in_transit.id).all()
    kinds = sorted((r.type.value, r.product_id, r.quantity) for r in rows)
    assert ("transfer_in", product.id, 10) in kinds
    assert ("transfer_out", product.id, 10) in kinds
    assert len([k for k in kinds if k[0] == "transfer_out"]) == 2
    assert len([k for k in kinds if k[0] == "transfer_in"]) == 1
    assert all(r.reference == in_transit.transfer_number for r in rows)


def test_outcome_exceeding_sent_rejected(in_transit, user):
    first, second = _lines(in_transit)
    with pytest.raises(ValidationError, match="exceeds"):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 8, "quantity_rejected": 3, "rejection_reason": "Torn"},
            {"item_id": second, "quantity_received": 5},
        ])


def test_negative_quantity_rejected(in_transit, user):
    first, second = _lines(in_transit)
    with pytest.raises(ValidationError):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": -1},
            {"item_id": second, "quantity_received": 5},
        ])


def test_reasons_required(in_transit, user):
    first, second = _lines(in_transit)
    with pytest.raises(ValidationError, match="rejection_reason"):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 9, "quantity_rejected": 1},
            {"item_id": second, "quantity_received": 5},
        ])
    with pytest.raises(ValidationError, match="disposal_reason"):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 10},
            {"item_id": second, "quantity_received": 4, "quantity_disposed": 1, "disposal_reason": " "},
        ])


def test_every_line_must_be_reported_once(in_transit, user):
    first, second = _lines(in_transit)
    with pytest.raises(ValidationError, match="Missing"):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 10},
        ])
    with pytest.raises(ValidationError, match="more than once"):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 10},
            {"item_id": first, "quantity_received": 10},
            {"item_id": second, "quantity_received": 5},
        ])


def test_unknown_item_is_not_found(in_transit, user):
    first, second = _lines(in_transit)
    with pytest.raises(NotFoundError):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 10},
            {"item_id": second, "quantity_received": 5},
            {"item_id": 999999, "quantity_received": 1},
        ])


def test_unknown_transfer_is_not_found(user, db_session):
    with pytest.raises(NotFoundError):
        transfer_service.receive_transfer(424242, user_id=user.id, items=[{"item_id": 1, "quantity_received": 1}])


def test_failed_reconciliation_rolls_back_everything(in_transit, user, warehouse_a, warehouse_b, product,
                                                     on_hand, monkeypatch):
    first, second = _lines(in_transit)
    real_credit = reconciliation_service.credit_inventory
    calls = []

    def failing_credit(warehouse_id, product_id, quantity):
        calls.append(product_id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return real_credit(warehouse_id, product_id, quantity)

    monkeypatch.setattr(reconciliation_service, "credit_inventory", failing_credit)

    with pytest.raises(RuntimeError):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=[
            {"item_id": first, "quantity_received": 10},
            {"item_id": second, "quantity_received": 5},
        ])

    db.session.expire_all()
    transfer = transfer_service.get_transfer(in_transit.id)
    assert transfer.status == TransferStatus.in_transit
    assert transfer.received_by is None
    assert all(i.item_status == TransferItemStatus.pending for i in transfer.items)
    assert all(i.quantity_received == 0 for i in transfer.items)
    assert on_hand(warehouse_b, product) == 0
    assert on_hand(warehouse_a, product) == 50
    assert db.session.query(InventoryTransaction).filter_by(transfer_id=in_transit.id).count() == 0
    actions = {log.action for log in db.session.query(WarehouseTransferLog).filter_by(transfer_id=in_transit.id)}
    assert actions == {"transfer_initiated", "transfer_dispatched"}


def test_receive_twice_fails(in_transit, user):
    from transferhub.errors import InvalidStateError

    first, second = _lines(in_transit)
    items = [{"item_id": first, "quantity_received": 10}, {"item_id": second, "quantity_received": 5}]
    transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=items)

    with pytest.raises(InvalidStateError):
        transfer_service.receive_transfer(in_transit.id, user_id=user.id, items=items)
