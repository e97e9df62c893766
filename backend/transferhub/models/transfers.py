from __future__ import annotations

import enum

from sqlalchemy import event

from ..extensions import db
from transferhub.errors import AuditLogImmutableError, InvalidStateError
from transferhub.time_utils import to_iso_date, to_utc_z


class TransferStatus(str, enum.Enum):
    initiated = "initiated"
    in_transit = "in_transit"
    received = "received"
    partial_received = "partial_received"
    rejected = "rejected"
    returned = "returned"
    cancelled = "cancelled"


class TransferItemStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    partial_accepted = "partial_accepted"
    rejected = "rejected"
    disposed = "disposed"
    returned = "returned"


# The only place transfer transitions are defined. Cancel is the one edge
# that skips receipt; returned and cancelled are terminal.
TRANSFER_TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.initiated: frozenset({TransferStatus.in_transit, TransferStatus.cancelled}),
    TransferStatus.in_transit: frozenset({
        TransferStatus.received,
        TransferStatus.partial_received,
        TransferStatus.rejected,
        TransferStatus.cancelled,
    }),
    TransferStatus.received: frozenset({TransferStatus.returned}),
    TransferStatus.partial_received: frozenset({TransferStatus.returned}),
    TransferStatus.rejected: frozenset({TransferStatus.returned}),
    TransferStatus.returned: frozenset(),
    TransferStatus.cancelled: frozenset(),
}

# Outgoing transfers in these states hold their quantities against the source warehouse
RESERVING_STATUSES = (TransferStatus.initiated, TransferStatus.in_transit)


def can_transition(current: TransferStatus, target: TransferStatus) -> bool:
    return target in TRANSFER_TRANSITIONS[current]


def require_transition(current: TransferStatus, target: TransferStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot move transfer from {current.value} to {target.value}"
        )


def _enum_column(enum_cls, name):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda e: [m.value for m in e],
    )


class WarehouseTransfer(db.Model):
    """
    One physical shipment of stock between two warehouses.

    LIFECYCLE:
    1. initiated: created with its items; quantities reserved at the source
    2. in_transit: dispatched by courier; still reserved
    3. received / partial_received / rejected: receipt classified per item,
       source debited, target credited with accepted quantities
    4. returned: rejected lines shipped back to the source
    5. cancelled: from initiated or in_transit, releases the reservation

    Never deleted.
    """
    __tablename__ = "warehouse_transfers"
    __table_args__ = (
        db.CheckConstraint(
            "source_warehouse_id <> target_warehouse_id",
            name="ck_warehouse_transfers_different_warehouses",
        ),
        db.Index("ix_warehouse_transfers_source_status", "source_warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_number = db.Column(db.String(50), nullable=False, unique=True)

    source_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    target_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(
        _enum_column(TransferStatus, "transfer_status"),
        nullable=False,
        default=TransferStatus.initiated,
        index=True,
    )

    # Initiation
    initiated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    initiation_notes = db.Column(db.Text, nullable=True)

    # Outbound courier
    courier_name = db.Column(db.String(255), nullable=True)
    tracking_number = db.Column(db.String(255), nullable=True)
    expected_delivery_date = db.Column(db.Date, nullable=True)
    dispatched_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    dispatch_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Receipt
    received_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_notes = db.Column(db.Text, nullable=True)

    # Return of rejected lines
    return_courier_name = db.Column(db.String(255), nullable=True)
    return_tracking_number = db.Column(db.String(255), nullable=True)
    return_dispatch_date = db.Column(db.DateTime(timezone=True), nullable=True)
    return_initiated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Cancellation
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    source_warehouse = db.relationship("Warehouse", foreign_keys=[source_warehouse_id])
    target_warehouse = db.relationship("Warehouse", foreign_keys=[target_warehouse_id])
    initiator = db.relationship("User", foreign_keys=[initiated_by])
    receiver = db.relationship("User", foreign_keys=[received_by])
    items = db.relationship(
        "WarehouseTransferItem",
        back_populates="transfer",
        order_by="WarehouseTransferItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<WarehouseTransfer id={self.id} number={self.transfer_number!r} status={self.status.value}>"

    def transition_to(self, target: TransferStatus) -> TransferStatus:
        """Move to target through the transition table; returns the previous status."""
        previous = self.status
        require_transition(previous, target)
        self.status = target
        return previous

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "source_warehouse_id": self.source_warehouse_id,
            "target_warehouse_id": self.target_warehouse_id,
            "source_warehouse": {"id": self.source_warehouse.id, "name": self.source_warehouse.name}
            if self.source_warehouse else None,
            "target_warehouse": {"id": self.target_warehouse.id, "name": self.target_warehouse.name}
            if self.target_warehouse else None,
            "status": self.status.value,
            "initiated_by": self.initiated_by,
            "initiator": self.initiator.to_summary() if self.initiator else None,
            "initiated_at": to_utc_z(self.initiated_at),
            "initiation_notes": self.initiation_notes,
            "courier_name": self.courier_name,
            "tracking_number": self.tracking_number,
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "dispatched_by": self.dispatched_by,
            "dispatch_date": to_utc_z(self.dispatch_date),
            "received_by": self.received_by,
            "receiver": self.receiver.to_summary() if self.receiver else None,
            "received_at": to_utc_z(self.received_at),
            "receipt_notes": self.receipt_notes,
            "return_courier_name": self.return_courier_name,
            "return_tracking_number": self.return_tracking_number,
            "return_dispatch_date": to_utc_z(self.return_dispatch_date),
            "return_initiated_by": self.return_initiated_by,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_notes": self.cancellation_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WarehouseTransferItem(db.Model):
    """
    One product line (optionally batch-tagged) of a transfer.

    quantity_sent is fixed at creation. The outcome quantities are written once
    by receive; quantity_returned is written once by initiate_return.
    """
    __tablename__ = "warehouse_transfer_items"
    __table_args__ = (
        db.CheckConstraint("quantity_sent > 0", name="ck_transfer_items_sent_positive"),
        db.CheckConstraint(
            "quantity_received >= 0 AND quantity_rejected >= 0 "
            "AND quantity_disposed >= 0 AND quantity_returned >= 0",
            name="ck_transfer_items_qty_nonneg",
        ),
        db.CheckConstraint(
            "quantity_received + quantity_rejected + quantity_disposed <= quantity_sent",
            name="ck_transfer_items_outcome_le_sent",
        ),
        db.CheckConstraint(
            "quantity_returned <= quantity_rejected",
            name="ck_transfer_items_returned_le_rejected",
        ),
        db.Index("ix_transfer_items_product_batch", "product_id", "batch_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("warehouse_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(255), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(10), nullable=True)

    quantity_sent = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    quantity_rejected = db.Column(db.Integer, nullable=False, default=0)
    quantity_disposed = db.Column(db.Integer, nullable=False, default=0)
    quantity_returned = db.Column(db.Integer, nullable=False, default=0)

    item_status = db.Column(
        _enum_column(TransferItemStatus, "transfer_item_status"),
        nullable=False,
        default=TransferItemStatus.pending,
    )
    rejection_reason = db.Column(db.Text, nullable=True)
    disposal_reason = db.Column(db.Text, nullable=True)
    condition_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    transfer = db.relationship("WarehouseTransfer", back_populates="items")
    product = db.relationship("Product")

    @property
    def reserved_quantity(self) -> int:
        return self.quantity_sent - (self.quantity_returned or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "unit_price_cents": self.unit_price_cents,
            "currency": self.currency,
            "quantity_sent": self.quantity_sent,
            "quantity_received": self.quantity_received,
            "quantity_rejected": self.quantity_rejected,
            "quantity_disposed": self.quantity_disposed,
            "quantity_returned": self.quantity_returned,
            "item_status": self.item_status.value,
            "rejection_reason": self.rejection_reason,
            "disposal_reason": self.disposal_reason,
            "condition_notes": self.condition_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WarehouseTransferLog(db.Model):
    """
    Append-only audit trail of a transfer.

    One row per lifecycle transition or item-level rejection/disposal.
    Independent of the organization-wide activity log.
    """
    __tablename__ = "warehouse_transfer_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("warehouse_transfers.id"), nullable=False, index=True)
    transfer_item_id = db.Column(db.Integer, db.ForeignKey("warehouse_transfer_items.id"), nullable=True)

    action = db.Column(db.String(100), nullable=False)
    action_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    previous_status = db.Column(db.String(50), nullable=True)
    new_status = db.Column(db.String(50), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    actor = db.relationship("User", foreign_keys=[action_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "transfer_item_id": self.transfer_item_id,
            "action": self.action,
            "action_by": self.action_by,
            "actor": self.actor.to_summary() if self.actor else None,
            "action_at": to_utc_z(self.action_at),
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "details": self.details,
            "notes": self.notes,
        }


@event.listens_for(WarehouseTransferLog, "before_update")
def _prevent_log_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Transfer log {target.id} cannot be modified")


@event.listens_for(WarehouseTransferLog, "before_delete")
def _prevent_log_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Transfer log {target.id} cannot be deleted")
