# Overview: Service-layer operations for the inventory ledger; reads stock movements and appends transfer movements.

from __future__ import annotations

from datetime import date
from typing import Iterator, Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    InventoryTransaction,
    LedgerEntryType,
    INBOUND_ENTRY_TYPES,
    OUTBOUND_ENTRY_TYPES,
)
from ..time_utils import utcnow
"""
Ledger Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- Inbound types credit target_warehouse_id; outbound types debit source_warehouse_id.
- Batch-level quantities are derived from rows with a batch_number; rows
  without one only describe generic stock and are ignored by batch queries.
- Written inside the same DB transaction as the domain event they record.
"""


def iter_batch_inbound(warehouse_id: int) -> Iterator[InventoryTransaction]:
    """Batch-tagged rows that brought stock into the warehouse, oldest first."""
    q = (
        db.session.query(InventoryTransaction)
        .filter(
            InventoryTransaction.type.in_(INBOUND_ENTRY_TYPES),
            InventoryTransaction.target_warehouse_id == warehouse_id,
            InventoryTransaction.batch_number.isnot(None),
            InventoryTransaction.batch_number != "",
        )
        .order_by(InventoryTransaction.occurred_at.asc(), InventoryTransaction.id.asc())
    )
    yield from q


def iter_batch_outbound(warehouse_id: int) -> Iterator[InventoryTransaction]:
    """Batch-tagged rows that took stock out of the warehouse."""
    q = (
        db.session.query(InventoryTransaction)
        .filter(
            InventoryTransaction.type.in_(OUTBOUND_ENTRY_TYPES),
            InventoryTransaction.source_warehouse_id == warehouse_id,
            InventoryTransaction.batch_number.isnot(None),
            InventoryTransaction.batch_number != "",
        )
        .order_by(InventoryTransaction.id.asc())
    )
    yield from q


def get_product_ledger(warehouse_id: int, product_id: int, limit: int | None = None) -> list[InventoryTransaction]:
    """Every movement of one product in or out of one warehouse, newest first."""
    q = (
        db.session.query(InventoryTransaction)
        .filter(
            InventoryTransaction.product_id == product_id,
            or_(
                InventoryTransaction.source_warehouse_id == warehouse_id,
                InventoryTransaction.target_warehouse_id == warehouse_id,
            ),
        )
        .order_by(InventoryTransaction.occurred_at.desc(), InventoryTransaction.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()


def append_entry(
    *,
    entry_type: LedgerEntryType,
    product_id: int,
    quantity: int,
    source_warehouse_id: int | None = None,
    target_warehouse_id: int | None = None,
    batch_number: str | None = None,
    expiry_date: Optional[date] = None,
    unit_price_cents: int | None = None,
    currency: str | None = None,
    reference: str | None = None,
    transfer_id: int | None = None,
    user_id: int | None = None,
) -> InventoryTransaction:
    """
    Append one ledger row.

    - No updates/deletes of existing rows.
    - Caller owns the transaction.
    """
    if quantity <= 0:
        raise ValueError("ledger quantity must be positive")
    if entry_type in INBOUND_ENTRY_TYPES and target_warehouse_id is None:
        raise ValueError(f"{entry_type.value} requires target_warehouse_id")
    if entry_type in OUTBOUND_ENTRY_TYPES and source_warehouse_id is None:
        raise ValueError(f"{entry_type.value} requires source_warehouse_id")

    entry = InventoryTransaction(
        type=entry_type,
        product_id=product_id,
        quantity=quantity,
        source_warehouse_id=source_warehouse_id,
        target_warehouse_id=target_warehouse_id,
        batch_number=batch_number or None,
        expiry_date=expiry_date,
        unit_price_cents=unit_price_cents,
        currency=currency,
        reference=reference,
        transfer_id=transfer_id,
        user_id=user_id,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
