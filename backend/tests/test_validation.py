import pytest

from transferhub.errors import ValidationError
from transferhub.validation import (
    ReceiveItemInput,
    TransferItemInput,
    coerce_int,
    parse_receive_items,
    parse_transfer_items,
)


@pytest.mark.parametrize("value, expected", [(5, 5), ("12", 12), (" 7 ", 7), ("-3", -3)])
def test_coerce_int_accepts_integers(value, expected):
    assert coerce_int(value, "qty") == expected


@pytest.mark.parametrize("value", [1.0, "1.5", "1e3", "", True, None, "ten"])
def test_coerce_int_rejects_non_integers(value):
    with pytest.raises(ValidationError):
        coerce_int(value, "qty")


def test_parse_transfer_items_normalizes():
    items = parse_transfer_items([
        {"product_id": "3", "quantity": "4", "batch_number": " B1 ", "expiry_date": "2027-01-01",
         "unit_price_cents": 150, "currency": "EUR"},
        {"product_id": 5, "quantity_sent": 2, "batch_number": ""},
    ])

    assert items[0] == TransferItemInput(
        product_id=3, quantity=4, batch_number="B1",
        expiry_date=items[0].expiry_date, unit_price_cents=150, currency="EUR",
    )
    assert items[0].expiry_date.isoformat() == "2027-01-01"
    assert items[1].batch_number is None
    assert items[1].quantity == 2


@pytest.mark.parametrize("raw", [
    None,
    "not-a-list",
    [42],
    [{"quantity": 1}],
    [{"product_id": 1, "quantity": 1, "unit_price_cents": -1}],
    [{"product_id": 1, "quantity": 1, "expiry_date": "31/12/2027"}],
])
def test_parse_transfer_items_rejects(raw):
    with pytest.raises(ValidationError):
        parse_transfer_items(raw)


def test_parse_receive_items_defaults_to_zero():
    items = parse_receive_items([{"item_id": 9, "quantity_received": 3}])
    assert items == [ReceiveItemInput(item_id=9, quantity_received=3)]


def test_parse_receive_items_accepts_dataclasses():
    given = ReceiveItemInput(item_id=1, quantity_received=0, quantity_disposed=2, disposal_reason="Leaking")
    assert parse_receive_items([given]) == [given]
