# Overview: Service-layer operations for the transfer audit trail; append-only writes and history reads.

from __future__ import annotations

from typing import Any, Optional

from ..extensions import db
from ..models import WarehouseTransferLog, TransferStatus
from ..time_utils import utcnow

# Action tags written by the lifecycle engine
ACTION_INITIATED = "transfer_initiated"
ACTION_DISPATCHED = "transfer_dispatched"
ACTION_RECEIVED = "transfer_received"
ACTION_ITEM_REJECTED = "item_rejected"
ACTION_ITEM_DISPOSED = "item_disposed"
ACTION_CANCELLED = "transfer_cancelled"
ACTION_RETURN_INITIATED = "return_initiated"


def _status_value(status: TransferStatus | str | None) -> str | None:
    if status is None:
        return None
    return status.value if isinstance(status, TransferStatus) else str(status)


def append_transfer_log(
    *,
    transfer_id: int,
    action: str,
    action_by: int,
    previous_status: TransferStatus | str | None = None,
    new_status: TransferStatus | str | None = None,
    details: Optional[dict[str, Any]] = None,
    notes: Optional[str] = None,
    transfer_item_id: int | None = None,
) -> WarehouseTransferLog:
    """
    Append-only transfer log entry.

    - No updates/deletes of existing entries (the model refuses them).
    - Written in the same DB transaction as the transition it records.
    """
    entry = WarehouseTransferLog(
        transfer_id=transfer_id,
        transfer_item_id=transfer_item_id,
        action=action,
        action_by=action_by,
        action_at=utcnow(),
        previous_status=_status_value(previous_status),
        new_status=_status_value(new_status),
        details=details,
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_transfer_logs(transfer_id: int) -> list[WarehouseTransferLog]:
    """Full history of a transfer, newest first."""
    return (
        db.session.query(WarehouseTransferLog)
        .filter_by(transfer_id=transfer_id)
        .order_by(WarehouseTransferLog.action_at.desc(), WarehouseTransferLog.id.desc())
        .all()
    )
