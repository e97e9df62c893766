# Overview: Service-layer operations for transfer availability; derives what a warehouse can still send.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional

from sqlalchemy import func

from ..errors import NotFoundError
from ..extensions import db
from ..models import (
    InventoryItem,
    Product,
    Warehouse,
    WarehouseTransfer,
    WarehouseTransferItem,
    RESERVING_STATUSES,
)
from ..time_utils import to_iso_date
from .ledger_service import iter_batch_inbound, iter_batch_outbound
"""
Availability semantics (authoritative)

- Recomputed on every query; never cached or stored.
- A reservation is quantity_sent - quantity_returned of an item on an outgoing
  transfer whose status is in RESERVING_STATUSES (initiated, in_transit).
  Every other status releases it.
- Batch mode: per (batch_number, product_id)
      sum(inbound ledger) - sum(outbound ledger) - reservations
  keeping only keys that were ever checked in, and only positive results.
- Generic mode: InventoryItem.quantity - reservations of the product
  (all batches), floored at zero, zero results dropped.
- A batch line must also fit the generic figure of its product; batch
  and untagged lines share one on-hand pool.
- Correctness under concurrency comes from initiate_transfer locking the
  source warehouse and re-running these queries, not from locking reads.
"""

BatchKey = tuple[str, int]


@dataclass
class BatchAvailability:
    batch_number: str
    product_id: int
    product_name: str
    warehouse_id: int
    available_quantity: int
    expiry_date: Optional[date] = None
    unit_price_cents: int | None = None
    currency: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expiry_date"] = to_iso_date(self.expiry_date)
        return data


@dataclass
class ProductAvailability:
    product_id: int
    product_name: str
    product_sku: str | None
    warehouse_id: int
    available_quantity: int

    def to_dict(self) -> dict:
        return asdict(self)


def _require_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def _in_flight_items(warehouse_id: int, product_id: int | None = None):
    q = (
        db.session.query(WarehouseTransferItem)
        .join(WarehouseTransfer, WarehouseTransferItem.transfer_id == WarehouseTransfer.id)
        .filter(
            WarehouseTransfer.source_warehouse_id == warehouse_id,
            WarehouseTransfer.status.in_(RESERVING_STATUSES),
        )
    )
    if product_id is not None:
        q = q.filter(WarehouseTransferItem.product_id == product_id)
    return q


def get_reserved_quantity(warehouse_id: int, product_id: int, batch_number: str | None = None) -> int:
    """
    Quantity of a product held by in-flight outgoing transfers.

    batch_number=None sums every line of the product, batch-tagged or not.
    """
    q = db.session.query(
        func.coalesce(
            func.sum(WarehouseTransferItem.quantity_sent - WarehouseTransferItem.quantity_returned),
            0,
        )
    ).join(WarehouseTransfer, WarehouseTransferItem.transfer_id == WarehouseTransfer.id).filter(
        WarehouseTransfer.source_warehouse_id == warehouse_id,
        WarehouseTransfer.status.in_(RESERVING_STATUSES),
        WarehouseTransferItem.product_id == product_id,
    )
    if batch_number is not None:
        q = q.filter(WarehouseTransferItem.batch_number == batch_number)
    return int(q.scalar() or 0)


def _aggregate_batches(warehouse_id: int) -> dict[BatchKey, BatchAvailability]:
    batches: dict[BatchKey, BatchAvailability] = {}

    # map: inbound rows keyed by (batch, product); first row supplies expiry/price
    for entry in iter_batch_inbound(warehouse_id):
        key = (entry.batch_number, entry.product_id)
        existing = batches.get(key)
        if existing is None:
            batches[key] = BatchAvailability(
                batch_number=entry.batch_number,
                product_id=entry.product_id,
                product_name=entry.product.name if entry.product else "Unknown",
                warehouse_id=warehouse_id,
                available_quantity=entry.quantity,
                expiry_date=entry.expiry_date,
                unit_price_cents=entry.unit_price_cents,
                currency=entry.currency,
            )
        else:
            existing.available_quantity += entry.quantity

    # reduce: outbound rows and reservations only touch keys that exist
    outbound: dict[BatchKey, int] = defaultdict(int)
    for entry in iter_batch_outbound(warehouse_id):
        outbound[(entry.batch_number, entry.product_id)] += entry.quantity

    reserved: dict[BatchKey, int] = defaultdict(int)
    for item in _in_flight_items(warehouse_id):
        reserved[(item.batch_number, item.product_id)] += item.reserved_quantity

    for key, batch in batches.items():
        batch.available_quantity -= outbound.get(key, 0) + reserved.get(key, 0)

    return batches


def get_available_batches(warehouse_id: int) -> list[BatchAvailability]:
    """Batch-tagged stock that can still go on a new outgoing transfer."""
    _require_warehouse(warehouse_id)
    batches = _aggregate_batches(warehouse_id)
    return [b for b in batches.values() if b.available_quantity > 0]


def get_available_batch_quantity(warehouse_id: int, product_id: int, batch_number: str) -> int:
    batch = _aggregate_batches(warehouse_id).get((batch_number, product_id))
    if batch is None:
        return 0
    return max(0, batch.available_quantity)


def get_warehouse_inventory(warehouse_id: int) -> list[ProductAvailability]:
    """Generic (non-batch) stock per product that can go on a new outgoing transfer."""
    _require_warehouse(warehouse_id)

    rows = (
        db.session.query(InventoryItem, Product)
        .join(Product, InventoryItem.product_id == Product.id)
        .filter(InventoryItem.warehouse_id == warehouse_id, InventoryItem.quantity > 0)
        .order_by(Product.name.asc())
        .all()
    )

    reserved: dict[int, int] = defaultdict(int)
    for item in _in_flight_items(warehouse_id):
        reserved[item.product_id] += item.reserved_quantity

    result = []
    for inv, product in rows:
        available = max(0, inv.quantity - reserved.get(inv.product_id, 0))
        if available > 0:
            result.append(
                ProductAvailability(
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    warehouse_id=warehouse_id,
                    available_quantity=available,
                )
            )
    return result


def get_available_product_quantity(warehouse_id: int, product_id: int) -> int:
    on_hand = (
        db.session.query(InventoryItem.quantity)
        .filter_by(warehouse_id=warehouse_id, product_id=product_id)
        .scalar()
    )
    return max(0, int(on_hand or 0) - get_reserved_quantity(warehouse_id, product_id))


def get_available_quantity(warehouse_id: int, product_id: int, batch_number: str | None = None) -> int:
    """
    Single-key lookup used to re-validate a reservation at insert time.

    A batch key is capped by the product-level figure too, since untagged
    reservations draw on the same on-hand stock as the batch.
    """
    product_available = get_available_product_quantity(warehouse_id, product_id)
    if batch_number:
        return min(get_available_batch_quantity(warehouse_id, product_id, batch_number), product_available)
    return product_available
