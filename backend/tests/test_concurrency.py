"""
Reservation race: concurrent initiations against the same stock must never
reserve more than is available. Runs on a temporary SQLite file so threads
get separate connections.
"""

import os
import tempfile
import threading

import pytest

from transferhub import create_app
from transferhub.errors import ReconciliationConflict, ValidationError
from transferhub.extensions import db
from transferhub.models import (
    InventoryItem,
    InventoryTransaction,
    LedgerEntryType,
    Product,
    User,
    Warehouse,
    WarehouseTransfer,
)
from transferhub.services import availability_service, transfer_service


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "race.sqlite3")
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "TRANSFER_RETRY_ATTEMPTS": 10,
        "TRANSFER_RETRY_BACKOFF": 0.01,
    })
    with app.app_context():
        db.create_all()

        user = User(username="racer", is_active=True)
        source = Warehouse(name="Source", is_active=True)
        target = Warehouse(name="Target", is_active=True)
        product = Product(sku="RACE-1", name="Contested Widget", is_active=True)
        db.session.add_all([user, source, target, product])
        db.session.commit()

        db.session.add(InventoryItem(warehouse_id=source.id, product_id=product.id, quantity=100))
        db.session.add(InventoryTransaction(
            type=LedgerEntryType.check_in,
            product_id=product.id,
            quantity=100,
            target_warehouse_id=source.id,
            batch_number="LOT-1",
        ))
        db.session.commit()
        ids = {"user": user.id, "source": source.id, "target": target.id, "product": product.id}

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    tmpdir.cleanup()


def _race(app, ids, quantities, batch_number=None, batch_numbers=None):
    batches = batch_numbers or [batch_number] * len(quantities)
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(quantities))

    def worker(quantity, batch):
        with app.app_context():
            barrier.wait()
            try:
                transfer_service.initiate_transfer(
                    source_warehouse_id=ids["source"],
                    target_warehouse_id=ids["target"],
                    items=[{"product_id": ids["product"], "quantity": quantity, "batch_number": batch}],
                    user_id=ids["user"],
                )
                result = ("ok", quantity)
            except ValidationError:
                result = ("insufficient", quantity)
            except ReconciliationConflict:
                result = ("conflict", quantity)
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(q, b)) for q, b in zip(quantities, batches)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


def test_two_initiations_cannot_oversell_batch(file_app):
    app, ids = file_app

    outcomes = _race(app, ids, [60, 60], batch_number="LOT-1")

    assert sorted(kind for kind, _ in outcomes) == ["insufficient", "ok"]
    with app.app_context():
        assert db.session.query(WarehouseTransfer).count() == 1
        assert availability_service.get_available_quantity(ids["source"], ids["product"], "LOT-1") == 40


def test_many_initiations_never_exceed_stock(file_app):
    app, ids = file_app

    outcomes = _race(app, ids, [30] * 6)

    reserved = sum(q for kind, q in outcomes if kind == "ok")
    assert reserved <= 100
    assert len([1 for kind, _ in outcomes if kind == "ok"]) == 3
    with app.app_context():
        assert availability_service.get_reserved_quantity(ids["source"], ids["product"]) == reserved
        assert availability_service.get_available_product_quantity(ids["source"], ids["product"]) == 100 - reserved
        numbers = [t.transfer_number for t in db.session.query(WarehouseTransfer).all()]
        assert len(numbers) == len(set(numbers))


def test_combined_within_stock_both_succeed(file_app):
    app, ids = file_app

    outcomes = _race(app, ids, [40, 50])

    assert [kind for kind, _ in outcomes] == ["ok", "ok"]
    with app.app_context():
        assert availability_service.get_available_product_quantity(ids["source"], ids["product"]) == 10


def test_batch_and_untagged_initiations_cannot_oversell(file_app):
    app, ids = file_app

    outcomes = _race(app, ids, [60, 60], batch_numbers=["LOT-1", None])

    assert sorted(kind for kind, _ in outcomes) == ["insufficient", "ok"]
    with app.app_context():
        assert availability_service.get_reserved_quantity(ids["source"], ids["product"]) == 60
        assert availability_service.get_available_product_quantity(ids["source"], ids["product"]) == 40
