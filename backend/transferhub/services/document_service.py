# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import TransferError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


class DocumentSequenceError(TransferError):
    """Raised when document sequence operations fail."""
    pass


def _bump(warehouse_id: int, document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.warehouse_id == warehouse_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(warehouse_id=warehouse_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_sequence_number(*, warehouse_id: int, document_type: str) -> int:
    """
    Atomically allocate the next number for a warehouse/type.

    Runs inside the caller's transaction; the UPDATE holds the sequence row
    until commit. A concurrent first allocation is resolved in a savepoint.
    """
    if not warehouse_id:
        raise DocumentSequenceError("warehouse_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _bump(warehouse_id, document_type)
    if next_num is not None:
        return next_num

    savepoint = db.session.begin_nested()
    try:
        db.session.add(DocumentSequence(warehouse_id=warehouse_id, document_type=document_type, next_number=2))
        db.session.flush()
        savepoint.commit()
        return 1
    except IntegrityError:
        savepoint.rollback()
        next_num = _bump(warehouse_id, document_type)
        if next_num is None:
            raise
        return next_num


def next_transfer_number(source_warehouse_id: int) -> str:
    """TRF-YYYYMMDD-WWW-NNNN, unique per source warehouse."""
    prefix = current_app.config.get("TRANSFER_NUMBER_PREFIX", "TRF")
    seq = next_sequence_number(warehouse_id=source_warehouse_id, document_type="TRANSFER")
    return f"{prefix}-{utcnow():%Y%m%d}-{source_warehouse_id:03d}-{seq:04d}"
