# Overview: Flask API routes for warehouse availability; read-only views of what can still be transferred.

from flask import Blueprint, current_app, jsonify

from transferhub.errors import TransferError
from transferhub.services import availability_service


warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")


@warehouses_bp.get("/<int:warehouse_id>/available-batches")
def available_batches(warehouse_id: int):
    try:
        batches = availability_service.get_available_batches(warehouse_id)
        return jsonify({"batches": [b.to_dict() for b in batches]}), 200
    except TransferError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load available batches")
        return jsonify({"error": "Internal server error"}), 500


@warehouses_bp.get("/<int:warehouse_id>/inventory")
def available_inventory(warehouse_id: int):
    try:
        products = availability_service.get_warehouse_inventory(warehouse_id)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except TransferError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load warehouse inventory")
        return jsonify({"error": "Internal server error"}), 500
