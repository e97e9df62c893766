from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from transferhub.errors import ValidationError
from transferhub.time_utils import parse_iso_date


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class TransferItemInput:
    product_id: int
    quantity: int
    batch_number: str | None = None
    expiry_date: Optional[date] = None
    unit_price_cents: int | None = None
    currency: str | None = None


@dataclass(frozen=True)
class ReceiveItemInput:
    item_id: int
    quantity_received: int
    quantity_rejected: int = 0
    quantity_disposed: int = 0
    rejection_reason: str | None = None
    disposal_reason: str | None = None
    condition_notes: str | None = None


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects floats, booleans, decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def optional_date(value: Any, field: str) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date")


def _require_mapping(payload: Any, what: str) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"Invalid {what}")
    return payload


def parse_transfer_items(raw_items: Any) -> list[TransferItemInput]:
    """Normalize the item list of an initiate request."""
    if not raw_items:
        raise ValidationError("At least one item is required")
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("items must be a list")

    items = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, TransferItemInput):
            item = raw
        else:
            raw = _require_mapping(raw, f"item at position {idx}")
            if "product_id" not in raw:
                raise ValidationError(f"items[{idx}].product_id is required")
            qty = raw.get("quantity", raw.get("quantity_sent"))
            if qty is None:
                raise ValidationError(f"items[{idx}].quantity is required")
            price = raw.get("unit_price_cents")
            item = TransferItemInput(
                product_id=coerce_int(raw["product_id"], f"items[{idx}].product_id"),
                quantity=coerce_int(qty, f"items[{idx}].quantity"),
                batch_number=optional_text(raw.get("batch_number")),
                expiry_date=optional_date(raw.get("expiry_date"), f"items[{idx}].expiry_date"),
                unit_price_cents=coerce_int(price, f"items[{idx}].unit_price_cents") if price is not None else None,
                currency=optional_text(raw.get("currency")),
            )

        if item.quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be greater than 0")
        if item.unit_price_cents is not None:
            if item.unit_price_cents < 0:
                raise ValidationError(f"items[{idx}].unit_price_cents must be >= 0")
            if item.unit_price_cents > MAX_PRICE_CENTS:
                raise ValidationError(f"items[{idx}].unit_price_cents cannot exceed {MAX_PRICE_CENTS}")
        items.append(item)
    return items


def parse_receive_items(raw_items: Any) -> list[ReceiveItemInput]:
    """Normalize the per-item outcome list of a receive request."""
    if not raw_items:
        raise ValidationError("At least one item outcome is required")
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("items must be a list")

    items = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, ReceiveItemInput):
            item = raw
        else:
            raw = _require_mapping(raw, f"item at position {idx}")
            if "item_id" not in raw:
                raise ValidationError(f"items[{idx}].item_id is required")
            item = ReceiveItemInput(
                item_id=coerce_int(raw["item_id"], f"items[{idx}].item_id"),
                quantity_received=coerce_int(raw.get("quantity_received", 0), f"items[{idx}].quantity_received"),
                quantity_rejected=coerce_int(raw.get("quantity_rejected", 0), f"items[{idx}].quantity_rejected"),
                quantity_disposed=coerce_int(raw.get("quantity_disposed", 0), f"items[{idx}].quantity_disposed"),
                rejection_reason=optional_text(raw.get("rejection_reason")),
                disposal_reason=optional_text(raw.get("disposal_reason")),
                condition_notes=optional_text(raw.get("condition_notes")),
            )

        for field in ("quantity_received", "quantity_rejected", "quantity_disposed"):
            if getattr(item, field) < 0:
                raise ValidationError(f"items[{idx}].{field} must be >= 0")
        if item.quantity_rejected > 0 and not optional_text(item.rejection_reason):
            raise ValidationError(f"items[{idx}].rejection_reason is required when items are rejected")
        if item.quantity_disposed > 0 and not optional_text(item.disposal_reason):
            raise ValidationError(f"items[{idx}].disposal_reason is required when items are disposed")
        items.append(item)
    return items

