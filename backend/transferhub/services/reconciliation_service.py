# Overview: Service-layer operations for inventory reconciliation; applies transfer outcomes to on-hand stock.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ReconciliationConflict, ValidationError
from ..extensions import db
from ..models import (
    InventoryItem,
    LedgerEntryType,
    WarehouseTransfer,
    WarehouseTransferItem,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update
from .ledger_service import append_entry
"""
Reconciliation Invariants (authoritative)

- Runs inside the caller's unit of work; never commits on its own.
- Each InventoryItem is read with SELECT ... FOR UPDATE and carries a
  version_id, so two receipts crediting the same (product, warehouse) either
  serialize on the row lock or fail with StaleDataError and are retried.
- A concurrent first insert of the same (product, warehouse) is caught inside
  a savepoint and raised as ReconciliationConflict for the retry loop.
- Stock is conserved: a receipt debits the source by quantity_sent at the
  moment its reservation is released and credits the target with
  quantity_received; a return credits the source with quantity_returned.
"""


def _locked_item(warehouse_id: int, product_id: int) -> InventoryItem | None:
    return lock_for_update(
        db.session.query(InventoryItem).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    ).first()


def credit_inventory(warehouse_id: int, product_id: int, quantity: int) -> InventoryItem:
    """Add quantity to the (product, warehouse) record, creating it when absent."""
    if quantity <= 0:
        raise ValidationError("Quantity to credit must be positive")

    item = _locked_item(warehouse_id, product_id)
    if item is not None:
        item.quantity = item.quantity + quantity
        item.last_updated = utcnow()
        db.session.flush()
        return item

    savepoint = db.session.begin_nested()
    try:
        item = InventoryItem(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            last_updated=utcnow(),
        )
        db.session.add(item)
        db.session.flush()
        savepoint.commit()
    except IntegrityError as exc:
        savepoint.rollback()
        raise ReconciliationConflict(
            f"Inventory record for product {product_id} at warehouse {warehouse_id} was created concurrently"
        ) from exc
    return item


def debit_inventory(warehouse_id: int, product_id: int, quantity: int) -> InventoryItem | None:
    """
    Remove quantity from the (product, warehouse) record.

    On-hand never goes negative: a shortfall is floored at zero and logged.
    """
    if quantity <= 0:
        raise ValidationError("Quantity to debit must be positive")

    item = _locked_item(warehouse_id, product_id)
    on_hand = item.quantity if item is not None else 0
    if on_hand < quantity:
        current_app.logger.warning(
            "Stock shortfall debiting product %s at warehouse %s: on hand %s, debit %s",
            product_id, warehouse_id, on_hand, quantity,
        )
    if item is None:
        return None

    item.quantity = max(0, on_hand - quantity)
    item.last_updated = utcnow()
    db.session.flush()
    return item


def reconcile_receipt(transfer: WarehouseTransfer, user_id: int) -> None:
    """Apply a classified receipt to both warehouses and the ledger."""
    for item in transfer.items:
        debit_inventory(transfer.source_warehouse_id, item.product_id, item.quantity_sent)
        append_entry(
            entry_type=LedgerEntryType.transfer_out,
            product_id=item.product_id,
            quantity=item.quantity_sent,
            source_warehouse_id=transfer.source_warehouse_id,
            target_warehouse_id=transfer.target_warehouse_id,
            batch_number=item.batch_number,
            expiry_date=item.expiry_date,
            unit_price_cents=item.unit_price_cents,
            currency=item.currency,
            reference=transfer.transfer_number,
            transfer_id=transfer.id,
            user_id=user_id,
        )

        if item.quantity_received > 0:
            credit_inventory(transfer.target_warehouse_id, item.product_id, item.quantity_received)
            append_entry(
                entry_type=LedgerEntryType.transfer_in,
                product_id=item.product_id,
                quantity=item.quantity_received,
                source_warehouse_id=transfer.source_warehouse_id,
                target_warehouse_id=transfer.target_warehouse_id,
                batch_number=item.batch_number,
                expiry_date=item.expiry_date,
                unit_price_cents=item.unit_price_cents,
                currency=item.currency,
                reference=transfer.transfer_number,
                transfer_id=transfer.id,
                user_id=user_id,
            )


def reconcile_return(transfer: WarehouseTransfer, items: list[WarehouseTransferItem], user_id: int) -> None:
    """Put returned quantities back on the source warehouse."""
    for item in items:
        if item.quantity_returned <= 0:
            continue
        credit_inventory(transfer.source_warehouse_id, item.product_id, item.quantity_returned)
        append_entry(
            entry_type=LedgerEntryType.transfer_return,
            product_id=item.product_id,
            quantity=item.quantity_returned,
            source_warehouse_id=transfer.target_warehouse_id,
            target_warehouse_id=transfer.source_warehouse_id,
            batch_number=item.batch_number,
            expiry_date=item.expiry_date,
            unit_price_cents=item.unit_price_cents,
            currency=item.currency,
            reference=transfer.transfer_number,
            transfer_id=transfer.id,
            user_id=user_id,
        )
