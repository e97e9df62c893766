# backend/transferhub/services/transfer_service.py
"""
Inter-warehouse transfer lifecycle engine.

WHY: Move stock between warehouses with a courier leg, per-line receipt
outcomes (accept, partial, reject, dispose) and a return leg for rejected
lines, while keeping in-flight quantities reserved at the source.

LIFECYCLE:
1. initiated: created with lines; stock reserved at the source
2. in_transit: dispatched; still reserved
3. received / partial_received / rejected: receipt classified, reservation
   released, source debited and target credited in the same transaction
4. returned: rejected lines sent back and credited to the source
5. cancelled: from initiated or in_transit; reservation released

Every public mutation runs as one unit of work: all writes (items, transfer,
audit entries, inventory) commit together or not at all.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Optional

from flask import current_app
from sqlalchemy import update

from ..errors import InvalidStateError, NotAuthenticated, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Product,
    TransferItemStatus,
    TransferStatus,
    User,
    Warehouse,
    WarehouseTransfer,
    WarehouseTransferItem,
    can_transition,
)
from ..time_utils import utcnow
from ..validation import (
    ReceiveItemInput,
    TransferItemInput,
    coerce_int,
    optional_date,
    optional_text,
    parse_receive_items,
    parse_transfer_items,
)
from . import audit_service
from .activity_service import log_activity
from .availability_service import get_available_batch_quantity, get_available_product_quantity
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_transfer_number
from .reconciliation_service import reconcile_receipt, reconcile_return


# ---------------------------------------------------------------------------
# Pure classification rules
# ---------------------------------------------------------------------------

def classify_item(
    quantity_sent: int,
    quantity_received: int,
    quantity_rejected: int,
    quantity_disposed: int,
) -> TransferItemStatus:
    """Outcome of one line; the first matching rule wins."""
    if quantity_disposed == quantity_sent:
        return TransferItemStatus.disposed
    if quantity_rejected == quantity_sent:
        return TransferItemStatus.rejected
    if quantity_received == quantity_sent:
        return TransferItemStatus.accepted
    if quantity_received > 0:
        return TransferItemStatus.partial_accepted
    return TransferItemStatus.pending


def derive_transfer_status(
    total_sent: int,
    total_received: int,
    total_rejected: int,
    total_disposed: int,
) -> TransferStatus:
    if total_received == 0 and (total_rejected > 0 or total_disposed > 0):
        return TransferStatus.rejected
    if total_received < total_sent:
        return TransferStatus.partial_received
    return TransferStatus.received


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _require_actor(user_id: int | None) -> User:
    if user_id is None:
        raise NotAuthenticated("User not authenticated")
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotAuthenticated("User not authenticated")
    return user


def _require_warehouse(warehouse_id: int, label: str) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"{label} warehouse {warehouse_id} not found")
    if not warehouse.is_active:
        raise ValidationError(f"{label} warehouse {warehouse_id} is inactive")
    return warehouse


def _load_transfer(transfer_id: int, *, lock: bool = False) -> WarehouseTransfer:
    query = db.session.query(WarehouseTransfer).filter_by(id=transfer_id)
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if transfer is None:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    return transfer


def _claim_source_warehouse(warehouse_id: int) -> None:
    """
    Serialize reservations against one source warehouse.

    The atomic UPDATE takes the row's write lock (and SQLite's database write
    lock) until commit, so a concurrent initiate waits here and then sees the
    reservations this one inserts.
    """
    result = db.session.execute(
        update(Warehouse)
        .where(Warehouse.id == warehouse_id)
        .values(lock_version=Warehouse.lock_version + 1)
    )
    if not result.rowcount:
        raise NotFoundError(f"Source warehouse {warehouse_id} not found")


def _insufficient(what: str, available: int, requested: int) -> ValidationError:
    return ValidationError(
        f"Insufficient available quantity for {what}. "
        f"Available: {available}, requested: {requested}"
    )


def _check_availability(source_warehouse_id: int, items: list[TransferItemInput]) -> None:
    per_batch: dict[tuple[int, str], int] = defaultdict(int)
    per_product: dict[int, int] = defaultdict(int)
    for item in items:
        per_product[item.product_id] += item.quantity
        if item.batch_number:
            per_batch[(item.product_id, item.batch_number)] += item.quantity

    for (product_id, batch_number), quantity in per_batch.items():
        available = get_available_batch_quantity(source_warehouse_id, product_id, batch_number)
        if quantity > available:
            raise _insufficient(f"batch {batch_number} of product {product_id}", available, quantity)

    # batch and untagged lines of a product share the same on-hand stock
    for product_id, quantity in per_product.items():
        available = get_available_product_quantity(source_warehouse_id, product_id)
        if quantity > available:
            raise _insufficient(f"product {product_id}", available, quantity)


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------

def initiate_transfer(
    *,
    source_warehouse_id: int,
    target_warehouse_id: int,
    items: Iterable[Any],
    user_id: int | None,
    courier_name: str | None = None,
    tracking_number: str | None = None,
    expected_delivery_date: Optional[date | str] = None,
    notes: str | None = None,
) -> WarehouseTransfer:
    """
    Create a transfer (status initiated) with its lines and reserve the stock.

    Raises:
        NotAuthenticated: no acting user
        ValidationError: no items, non-positive quantity, same warehouse,
            inactive warehouse/product or insufficient availability
        NotFoundError: unknown warehouse or product
    """
    item_list = list(items or [])
    source_warehouse_id = coerce_int(source_warehouse_id, "source_warehouse_id")
    target_warehouse_id = coerce_int(target_warehouse_id, "target_warehouse_id")

    def _op():
        actor = _require_actor(user_id)
        parsed = parse_transfer_items(item_list)
        if source_warehouse_id == target_warehouse_id:
            raise ValidationError("Source and target warehouses must be different")
        expected = optional_date(expected_delivery_date, "expected_delivery_date")

        _require_warehouse(source_warehouse_id, "Source")
        _require_warehouse(target_warehouse_id, "Target")
        for item in parsed:
            product = db.session.get(Product, item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            if not product.is_active:
                raise ValidationError(f"Product {item.product_id} is inactive")

        _claim_source_warehouse(source_warehouse_id)
        _check_availability(source_warehouse_id, parsed)

        transfer = WarehouseTransfer(
            transfer_number=next_transfer_number(source_warehouse_id),
            source_warehouse_id=source_warehouse_id,
            target_warehouse_id=target_warehouse_id,
            status=TransferStatus.initiated,
            initiated_by=actor.id,
            initiated_at=utcnow(),
            initiation_notes=optional_text(notes),
            courier_name=optional_text(courier_name),
            tracking_number=optional_text(tracking_number),
            expected_delivery_date=expected,
        )
        db.session.add(transfer)
        db.session.flush()

        default_currency = current_app.config.get("DEFAULT_CURRENCY", "USD")
        for item in parsed:
            db.session.add(WarehouseTransferItem(
                transfer_id=transfer.id,
                product_id=item.product_id,
                batch_number=item.batch_number,
                expiry_date=item.expiry_date,
                unit_price_cents=item.unit_price_cents,
                currency=item.currency or default_currency,
                quantity_sent=item.quantity,
                quantity_received=0,
                quantity_rejected=0,
                quantity_disposed=0,
                quantity_returned=0,
                item_status=TransferItemStatus.pending,
            ))
        db.session.flush()

        audit_service.append_transfer_log(
            transfer_id=transfer.id,
            action=audit_service.ACTION_INITIATED,
            action_by=actor.id,
            new_status=TransferStatus.initiated,
            details={
                "items_count": len(parsed),
                "total_quantity": sum(i.quantity for i in parsed),
                "courier_name": transfer.courier_name,
                "tracking_number": transfer.tracking_number,
            },
            notes=transfer.initiation_notes,
        )
        log_activity(
            user_id=actor.id,
            action="warehouse_transfer_initiated",
            entity_type="warehouse_transfer",
            entity_id=transfer.id,
            details={
                "transfer_number": transfer.transfer_number,
                "source_warehouse_id": source_warehouse_id,
                "target_warehouse_id": target_warehouse_id,
                "items_count": len(parsed),
            },
        )
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Transfer %s initiated by user %s", transfer.transfer_number, user_id)
    return transfer


def dispatch_transfer(
    transfer_id: int,
    *,
    user_id: int | None,
    courier_name: str | None = None,
    tracking_number: str | None = None,
) -> WarehouseTransfer:
    """
    Hand the shipment to the courier (initiated -> in_transit).

    Raises:
        InvalidStateError: transfer is not initiated
    """
    def _op():
        actor = _require_actor(user_id)
        transfer = _load_transfer(transfer_id, lock=True)
        if transfer.status != TransferStatus.initiated:
            raise InvalidStateError(f"Cannot dispatch transfer in {transfer.status.value} status")

        previous = transfer.transition_to(TransferStatus.in_transit)
        transfer.dispatch_date = utcnow()
        transfer.dispatched_by = actor.id
        transfer.courier_name = optional_text(courier_name) or transfer.courier_name
        transfer.tracking_number = optional_text(tracking_number) or transfer.tracking_number

        audit_service.append_transfer_log(
            transfer_id=transfer.id,
            action=audit_service.ACTION_DISPATCHED,
            action_by=actor.id,
            previous_status=previous,
            new_status=transfer.status,
            details={
                "courier_name": transfer.courier_name,
                "tracking_number": transfer.tracking_number,
            },
        )
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Transfer %s dispatched", transfer.transfer_number)
    return transfer


def _match_receipt_lines(
    transfer: WarehouseTransfer, outcomes: list[ReceiveItemInput]
) -> list[tuple[WarehouseTransferItem, ReceiveItemInput]]:
    lines = {item.id: item for item in transfer.items}
    matched: dict[int, ReceiveItemInput] = {}
    for outcome in outcomes:
        if outcome.item_id not in lines:
            raise NotFoundError(f"Item {outcome.item_id} not found on transfer {transfer.id}")
        if outcome.item_id in matched:
            raise ValidationError(f"Item {outcome.item_id} reported more than once")
        matched[outcome.item_id] = outcome

    missing = sorted(set(lines) - set(matched))
    if missing:
        raise ValidationError(f"Missing receipt outcome for items: {', '.join(str(m) for m in missing)}")

    pairs = []
    for item_id, item in lines.items():
        outcome = matched[item_id]
        accounted = outcome.quantity_received + outcome.quantity_rejected + outcome.quantity_disposed
        if accounted > item.quantity_sent:
            raise ValidationError(
                f"Item {item_id}: received + rejected + disposed ({accounted}) "
                f"exceeds quantity sent ({item.quantity_sent})"
            )
        pairs.append((item, outcome))
    return pairs


def receive_transfer(
    transfer_id: int,
    *,
    items: Iterable[Any],
    user_id: int | None,
    receipt_notes: str | None = None,
) -> WarehouseTransfer:
    """
    Record the receipt of an in-transit transfer.

    Classifies every line, derives the transfer outcome, writes the audit
    trail and reconciles both warehouses in a single transaction.

    Raises:
        InvalidStateError: transfer is not in_transit
        ValidationError: malformed or inconsistent quantities
        NotFoundError: unknown transfer or item
    """
    item_list = list(items or [])

    def _op():
        actor = _require_actor(user_id)
        transfer = _load_transfer(transfer_id, lock=True)
        if transfer.status != TransferStatus.in_transit:
            raise InvalidStateError(f"Cannot receive transfer in {transfer.status.value} status")

        pairs = _match_receipt_lines(transfer, parse_receive_items(item_list))

        total_sent = total_received = total_rejected = total_disposed = 0
        for item, outcome in pairs:
            item.quantity_received = outcome.quantity_received
            item.quantity_rejected = outcome.quantity_rejected
            item.quantity_disposed = outcome.quantity_disposed
            item.item_status = classify_item(
                item.quantity_sent,
                outcome.quantity_received,
                outcome.quantity_rejected,
                outcome.quantity_disposed,
            )
            item.rejection_reason = outcome.rejection_reason
            item.disposal_reason = outcome.disposal_reason
            item.condition_notes = outcome.condition_notes

            total_sent += item.quantity_sent
            total_received += item.quantity_received
            total_rejected += item.quantity_rejected
            total_disposed += item.quantity_disposed

            if item.quantity_rejected > 0 or item.quantity_disposed > 0:
                audit_service.append_transfer_log(
                    transfer_id=transfer.id,
                    transfer_item_id=item.id,
                    action=(
                        audit_service.ACTION_ITEM_DISPOSED
                        if item.quantity_disposed > 0
                        else audit_service.ACTION_ITEM_REJECTED
                    ),
                    action_by=actor.id,
                    details={
                        "product_id": item.product_id,
                        "product": item.product.name if item.product else None,
                        "batch": item.batch_number,
                        "quantity_rejected": item.quantity_rejected,
                        "quantity_disposed": item.quantity_disposed,
                        "rejection_reason": item.rejection_reason,
                        "disposal_reason": item.disposal_reason,
                    },
                )

        new_status = derive_transfer_status(total_sent, total_received, total_rejected, total_disposed)
        previous = transfer.transition_to(new_status)
        transfer.received_by = actor.id
        transfer.received_at = utcnow()
        transfer.receipt_notes = optional_text(receipt_notes)
        db.session.flush()

        audit_service.append_transfer_log(
            transfer_id=transfer.id,
            action=audit_service.ACTION_RECEIVED,
            action_by=actor.id,
            previous_status=previous,
            new_status=new_status,
            details={
                "total_sent": total_sent,
                "total_received": total_received,
                "total_rejected": total_rejected,
                "total_disposed": total_disposed,
            },
            notes=transfer.receipt_notes,
        )

        reconcile_receipt(transfer, actor.id)
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Transfer %s received as %s", transfer.transfer_number, transfer.status.value)
    return transfer


def cancel_transfer(transfer_id: int, *, user_id: int | None, reason: str | None) -> WarehouseTransfer:
    """
    Cancel a transfer before receipt; its reservation is released at once.

    Raises:
        ValidationError: blank reason
        InvalidStateError: transfer already received, returned or cancelled
    """
    def _op():
        actor = _require_actor(user_id)
        cleaned = optional_text(reason)
        if not cleaned:
            raise ValidationError("A cancellation reason is required")

        transfer = _load_transfer(transfer_id, lock=True)
        if not can_transition(transfer.status, TransferStatus.cancelled):
            raise InvalidStateError(
                f"Cannot cancel transfer in {transfer.status.value} status. "
                f"Transfers can only be cancelled before they are received."
            )

        previous = transfer.transition_to(TransferStatus.cancelled)
        transfer.cancelled_by = actor.id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_notes = cleaned

        audit_service.append_transfer_log(
            transfer_id=transfer.id,
            action=audit_service.ACTION_CANCELLED,
            action_by=actor.id,
            previous_status=previous,
            new_status=TransferStatus.cancelled,
            notes=cleaned,
        )
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Transfer %s cancelled", transfer.transfer_number)
    return transfer


def initiate_return(
    transfer_id: int,
    *,
    user_id: int | None,
    courier_name: str | None = None,
    tracking_number: str | None = None,
) -> WarehouseTransfer:
    """
    Ship rejected lines back to the source warehouse.

    Every rejected line becomes returned with quantity_returned set to its
    quantity_rejected; the source is credited with those quantities.

    Raises:
        InvalidStateError: transfer not yet received, or no rejected lines
    """
    def _op():
        actor = _require_actor(user_id)
        transfer = _load_transfer(transfer_id, lock=True)
        if not can_transition(transfer.status, TransferStatus.returned):
            raise InvalidStateError(f"Cannot initiate return for transfer in {transfer.status.value} status")

        rejected = [i for i in transfer.items if i.item_status == TransferItemStatus.rejected]
        if not rejected:
            raise InvalidStateError("Transfer has no rejected items to return")

        for item in rejected:
            item.quantity_returned = item.quantity_rejected
            item.item_status = TransferItemStatus.returned

        previous = transfer.transition_to(TransferStatus.returned)
        transfer.return_courier_name = optional_text(courier_name)
        transfer.return_tracking_number = optional_text(tracking_number)
        transfer.return_dispatch_date = utcnow()
        transfer.return_initiated_by = actor.id
        db.session.flush()

        audit_service.append_transfer_log(
            transfer_id=transfer.id,
            action=audit_service.ACTION_RETURN_INITIATED,
            action_by=actor.id,
            previous_status=previous,
            new_status=TransferStatus.returned,
            details={
                "return_courier_name": transfer.return_courier_name,
                "return_tracking_number": transfer.return_tracking_number,
                "items_returned": len(rejected),
                "quantity_returned": sum(i.quantity_returned for i in rejected),
            },
        )

        reconcile_return(transfer, rejected, actor.id)
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("Return initiated for transfer %s", transfer.transfer_number)
    return transfer


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_transfers(status: TransferStatus | str | None = None, warehouse_id: int | None = None) -> list[WarehouseTransfer]:
    """All transfers, newest first, optionally filtered by status or by either warehouse."""
    q = db.session.query(WarehouseTransfer)
    if status:
        try:
            q = q.filter(WarehouseTransfer.status == TransferStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown transfer status: {status}")
    if warehouse_id is not None:
        q = q.filter(
            (WarehouseTransfer.source_warehouse_id == warehouse_id)
            | (WarehouseTransfer.target_warehouse_id == warehouse_id)
        )
    return q.order_by(WarehouseTransfer.initiated_at.desc(), WarehouseTransfer.id.desc()).all()


def get_transfer(transfer_id: int) -> WarehouseTransfer:
    return _load_transfer(transfer_id)


def get_transfer_detail(transfer_id: int) -> dict:
    """
    Transfer with its items and full audit history (newest log first).

    Raises:
        NotFoundError: If transfer not found
    """
    transfer = _load_transfer(transfer_id)
    return {
        **transfer.to_dict(),
        "items": [item.to_dict() for item in transfer.items],
        "logs": [log.to_dict() for log in audit_service.get_transfer_logs(transfer.id)],
    }
