# backend/transferhub/routes/transfers.py
"""
Inter-warehouse transfer API routes.

Services own the unit of work (commit/rollback); routes only parse input,
call the service and translate domain errors into JSON responses.
"""
from flask import Blueprint, current_app, request, jsonify, g

from transferhub.decorators import require_actor
from transferhub.errors import TransferError
from transferhub.services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _error(exc: TransferError):
    return jsonify({"error": str(exc)}), exc.http_status


def _unexpected(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@transfers_bp.get("")
def list_transfers():
    """
    List transfers, newest first.

    Query params:
        status: filter by transfer status
        warehouse_id: transfers where the warehouse is source or target
    """
    try:
        transfers = transfer_service.list_transfers(
            status=request.args.get("status") or None,
            warehouse_id=request.args.get("warehouse_id", type=int),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("list transfers")


@transfers_bp.post("")
@require_actor
def create_transfer():
    """
    Initiate a transfer and reserve its stock at the source.

    Request body:
    {
        "source_warehouse_id": int,
        "target_warehouse_id": int,
        "items": [{"product_id": int, "quantity": int, "batch_number": str?,
                   "expiry_date": "YYYY-MM-DD"?, "unit_price_cents": int?, "currency": str?}],
        "courier_name": str (optional),
        "tracking_number": str (optional),
        "expected_delivery_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request or insufficient stock
        401: No acting user
        404: Warehouse or product not found
    """
    data = _json_body()
    if "source_warehouse_id" not in data or "target_warehouse_id" not in data:
        return jsonify({"error": "source_warehouse_id and target_warehouse_id are required"}), 400

    try:
        transfer = transfer_service.initiate_transfer(
            source_warehouse_id=data["source_warehouse_id"],
            target_warehouse_id=data["target_warehouse_id"],
            items=data.get("items") or [],
            user_id=g.current_user.id,
            courier_name=data.get("courier_name"),
            tracking_number=data.get("tracking_number"),
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
        )
        return jsonify(transfer_service.get_transfer_detail(transfer.id)), 201
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("initiate transfer")


@transfers_bp.get("/<int:transfer_id>")
def get_transfer(transfer_id: int):
    """Transfer with items and audit history."""
    try:
        return jsonify(transfer_service.get_transfer_detail(transfer_id)), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("load transfer")


@transfers_bp.post("/<int:transfer_id>/dispatch")
@require_actor
def dispatch_transfer(transfer_id: int):
    """
    Hand the transfer to the courier (initiated -> in_transit).

    Returns:
        200: Transfer dispatched
        404: Transfer not found
        409: Transfer not in initiated status
    """
    data = _json_body()
    try:
        transfer = transfer_service.dispatch_transfer(
            transfer_id,
            user_id=g.current_user.id,
            courier_name=data.get("courier_name"),
            tracking_number=data.get("tracking_number"),
        )
        return jsonify(transfer.to_dict()), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("dispatch transfer")


@transfers_bp.post("/<int:transfer_id>/receive")
@require_actor
def receive_transfer(transfer_id: int):
    """
    Record the receipt of an in-transit transfer.

    Request body:
    {
        "items": [{"item_id": int, "quantity_received": int, "quantity_rejected": int,
                   "quantity_disposed": int, "rejection_reason": str?,
                   "disposal_reason": str?, "condition_notes": str?}],
        "receipt_notes": str (optional)
    }

    Returns:
        200: Transfer received; status reflects the outcome
        400: Invalid quantities or missing reasons
        404: Transfer or item not found
        409: Transfer not in transit
    """
    data = _json_body()
    try:
        transfer = transfer_service.receive_transfer(
            transfer_id,
            items=data.get("items") or [],
            user_id=g.current_user.id,
            receipt_notes=data.get("receipt_notes"),
        )
        return jsonify(transfer_service.get_transfer_detail(transfer.id)), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("receive transfer")


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_actor
def cancel_transfer(transfer_id: int):
    """
    Cancel a transfer that has not been received.

    Request body:
    {
        "reason": str
    }
    """
    data = _json_body()
    try:
        transfer = transfer_service.cancel_transfer(
            transfer_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify(transfer.to_dict()), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("cancel transfer")


@transfers_bp.post("/<int:transfer_id>/return")
@require_actor
def return_transfer(transfer_id: int):
    """Ship the rejected lines of a received transfer back to the source."""
    data = _json_body()
    try:
        transfer = transfer_service.initiate_return(
            transfer_id,
            user_id=g.current_user.id,
            courier_name=data.get("courier_name"),
            tracking_number=data.get("tracking_number"),
        )
        return jsonify(transfer_service.get_transfer_detail(transfer.id)), 200
    except TransferError as e:
        return _error(e)
    except Exception:
        return _unexpected("initiate return")
