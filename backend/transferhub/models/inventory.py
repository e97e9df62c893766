from __future__ import annotations

import enum

from ..extensions import db
from transferhub.time_utils import to_iso_date, to_utc_z


class LedgerEntryType(str, enum.Enum):
    check_in = "check_in"
    check_out = "check_out"
    transfer_in = "transfer_in"
    transfer_out = "transfer_out"
    transfer_return = "transfer_return"


# Inbound rows credit target_warehouse_id, outbound rows debit source_warehouse_id
INBOUND_ENTRY_TYPES = (
    LedgerEntryType.check_in,
    LedgerEntryType.transfer_in,
    LedgerEntryType.transfer_return,
)
OUTBOUND_ENTRY_TYPES = (
    LedgerEntryType.check_out,
    LedgerEntryType.transfer_out,
)


class InventoryTransaction(db.Model):
    """
    Append-only ledger of stock entering or leaving a warehouse.

    Check-in/check-out rows are written by the wider inventory module; the
    transfer engine appends transfer_out/transfer_in/transfer_return rows when
    a receipt or a return physically moves stock. Batch-level availability is
    derived from these rows and never stored.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_transactions_qty_positive"),
        db.Index("ix_inventory_transactions_target_batch", "target_warehouse_id", "batch_number"),
        db.Index("ix_inventory_transactions_source_batch", "source_warehouse_id", "batch_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(
        db.Enum(
            LedgerEntryType,
            name="inventory_transaction_type",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    source_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    target_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)

    batch_number = db.Column(db.String(255), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(10), nullable=True)

    reference = db.Column(db.String(255), nullable=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("warehouse_transfers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} type={self.type.value if self.type else None} "
            f"product_id={self.product_id} qty={self.quantity} batch={self.batch_number!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value if self.type else None,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "source_warehouse_id": self.source_warehouse_id,
            "target_warehouse_id": self.target_warehouse_id,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "unit_price_cents": self.unit_price_cents,
            "currency": self.currency,
            "reference": self.reference,
            "transfer_id": self.transfer_id,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class InventoryItem(db.Model):
    """
    On-hand quantity per (product, warehouse).

    Written only by the reconciliation service (and the external check-in /
    check-out module). version_id turns a lost update into a StaleDataError.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_items_product_warehouse"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_qty_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    minimum_level = db.Column(db.Integer, nullable=True)
    reorder_level = db.Column(db.Integer, nullable=True)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem product_id={self.product_id} warehouse_id={self.warehouse_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "minimum_level": self.minimum_level,
            "reorder_level": self.reorder_level,
            "last_updated": to_utc_z(self.last_updated),
        }
