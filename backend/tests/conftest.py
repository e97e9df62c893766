"""
Pytest fixtures for transferhub backend tests.

Provides an in-memory database wiped before every test, catalog fixtures
(warehouses, products, users) and helpers that seed stock the way the wider
inventory module would (InventoryItem rows plus check_in ledger rows).
"""

from datetime import date

import pytest

from transferhub import create_app
from transferhub.extensions import db
from transferhub.models import (
    InventoryItem,
    InventoryTransaction,
    LedgerEntryType,
    Product,
    User,
    Warehouse,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSFER_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def user(db_session):
    u = User(username="clerk", full_name="Stock Clerk", email="clerk@example.com", is_active=True)
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def inactive_user(db_session):
    u = User(username="former", full_name="Former Clerk", is_active=False)
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def warehouse_a(db_session):
    wh = Warehouse(name="Warehouse A", is_active=True)
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def warehouse_b(db_session):
    wh = Warehouse(name="Warehouse B", is_active=True)
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def product(db_session):
    p = Product(sku="SKU-001", name="Amoxicillin 500mg", is_active=True)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def other_product(db_session):
    p = Product(sku="SKU-002", name="Paracetamol 250mg", is_active=True)
    db_session.add(p)
    db_session.commit()
    return p


def _set_on_hand(session, warehouse_id, product_id, delta):
    item = session.query(InventoryItem).filter_by(warehouse_id=warehouse_id, product_id=product_id).first()
    if item is None:
        item = InventoryItem(warehouse_id=warehouse_id, product_id=product_id, quantity=0)
        session.add(item)
    item.quantity = item.quantity + delta
    return item


@pytest.fixture(scope='function')
def stock(db_session):
    """stock(warehouse, product, qty): generic on-hand quantity, no ledger rows."""
    def _stock(warehouse, product, quantity):
        item = _set_on_hand(db_session, warehouse.id, product.id, quantity)
        db_session.commit()
        return item
    return _stock


@pytest.fixture(scope='function')
def check_in(db_session):
    """check_in(warehouse, product, qty, batch): batch-tagged receipt into a warehouse."""
    def _check_in(warehouse, product, quantity, batch_number, expiry_date=date(2027, 6, 30), unit_price_cents=250):
        db_session.add(InventoryTransaction(
            type=LedgerEntryType.check_in,
            product_id=product.id,
            quantity=quantity,
            target_warehouse_id=warehouse.id,
            batch_number=batch_number,
            expiry_date=expiry_date,
            unit_price_cents=unit_price_cents,
            currency="USD",
            reference="GRN-TEST",
        ))
        _set_on_hand(db_session, warehouse.id, product.id, quantity)
        db_session.commit()
    return _check_in


@pytest.fixture(scope='function')
def check_out(db_session):
    """check_out(warehouse, product, qty, batch): batch-tagged issue out of a warehouse."""
    def _check_out(warehouse, product, quantity, batch_number):
        db_session.add(InventoryTransaction(
            type=LedgerEntryType.check_out,
            product_id=product.id,
            quantity=quantity,
            source_warehouse_id=warehouse.id,
            batch_number=batch_number,
            reference="ISSUE-TEST",
        ))
        _set_on_hand(db_session, warehouse.id, product.id, -quantity)
        db_session.commit()
    return _check_out


@pytest.fixture(scope='function')
def on_hand(db_session):
    """on_hand(warehouse, product): current InventoryItem quantity, 0 when absent."""
    def _on_hand(warehouse, product) -> int:
        db_session.expire_all()
        item = db_session.query(InventoryItem).filter_by(warehouse_id=warehouse.id, product_id=product.id).first()
        return item.quantity if item is not None else 0
    return _on_hand
