"""Inventory reconciliation: credits, debits and the retrying unit of work."""

import pytest
from sqlalchemy.exc import OperationalError

from transferhub.errors import ReconciliationConflict, ValidationError
from transferhub.extensions import db
from transferhub.models import InventoryItem
from transferhub.services.concurrency import run_in_transaction
from transferhub.services.reconciliation_service import credit_inventory, debit_inventory


def test_credit_creates_missing_record(warehouse_b, product, on_hand):
    run_in_transaction(lambda: credit_inventory(warehouse_b.id, product.id, 12))

    assert on_hand(warehouse_b, product) == 12
    item = db.session.query(InventoryItem).filter_by(warehouse_id=warehouse_b.id, product_id=product.id).one()
    assert item.last_updated is not None


def test_credit_increments_existing_record(warehouse_b, product, stock, on_hand):
    stock(warehouse_b, product, 5)

    run_in_transaction(lambda: credit_inventory(warehouse_b.id, product.id, 7))

    assert on_hand(warehouse_b, product) == 12
    assert db.session.query(InventoryItem).filter_by(warehouse_id=warehouse_b.id).count() == 1


def test_debit_floors_at_zero(warehouse_a, product, stock, on_hand):
    stock(warehouse_a, product, 3)

    run_in_transaction(lambda: debit_inventory(warehouse_a.id, product.id, 5))

    assert on_hand(warehouse_a, product) == 0


def test_debit_without_record_is_noop(warehouse_a, product, on_hand):
    assert run_in_transaction(lambda: debit_inventory(warehouse_a.id, product.id, 5)) is None
    assert on_hand(warehouse_a, product) == 0


@pytest.mark.parametrize("quantity", [0, -4])
def test_non_positive_quantities_rejected(warehouse_a, product, quantity):
    with pytest.raises(ValidationError):
        run_in_transaction(lambda: credit_inventory(warehouse_a.id, product.id, quantity))
    with pytest.raises(ValidationError):
        run_in_transaction(lambda: debit_inventory(warehouse_a.id, product.id, quantity))


def test_unit_of_work_retries_lock_conflicts(app, db_session):
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise OperationalError("UPDATE warehouses", {}, Exception("database is locked"))
        return "done"

    assert run_in_transaction(flaky, attempts=3, backoff_base=0) == "done"
    assert len(attempts) == 3


def test_unit_of_work_gives_up_after_attempts(app, db_session):
    attempts = []

    def always_locked():
        attempts.append(1)
        raise OperationalError("UPDATE warehouses", {}, Exception("database is locked"))

    with pytest.raises(ReconciliationConflict):
        run_in_transaction(always_locked, attempts=2, backoff_base=0)
    assert len(attempts) == 2


def test_unit_of_work_does_not_retry_domain_errors(app, db_session):
    attempts = []

    def invalid():
        attempts.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        run_in_transaction(invalid, attempts=3, backoff_base=0)
    assert len(attempts) == 1


def test_unit_of_work_raises_schema_errors_without_retry(app, db_session):
    attempts = []

    def missing_table():
        attempts.append(1)
        raise OperationalError("SELECT * FROM gone", {}, Exception("no such table: gone"))

    with pytest.raises(OperationalError):
        run_in_transaction(missing_table, attempts=3, backoff_base=0)
    assert len(attempts) == 1
