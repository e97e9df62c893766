"""Flask CLI commands."""

import pytest

from transferhub.extensions import db
from transferhub.models import User, Warehouse
from transferhub.services import transfer_service


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


@pytest.fixture
def transfer(user, warehouse_a, warehouse_b, product, stock):
    stock(warehouse_a, product, 10)
    return transfer_service.initiate_transfer(
        source_warehouse_id=warehouse_a.id,
        target_warehouse_id=warehouse_b.id,
        items=[{"product_id": product.id, "quantity": 4, "batch_number": None}],
        user_id=user.id,
        courier_name="DHL",
    )


def test_system_init_is_idempotent(runner):
    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "Created user: admin" in first.output
    assert "Using existing warehouse" in second.output
    assert db.session.query(User).filter_by(username="admin").count() == 1
    assert db.session.query(Warehouse).filter_by(name="Main Warehouse").count() == 1


def test_transfers_list(runner, transfer):
    result = runner.invoke(args=["transfers", "list"])

    assert result.exit_code == 0
    assert transfer.transfer_number in result.output
    assert "initiated" in result.output


def test_transfers_list_empty_and_bad_status(runner):
    assert "No transfers found." in runner.invoke(args=["transfers", "list"]).output

    result = runner.invoke(args=["transfers", "list", "--status", "lost"])
    assert result.exit_code != 0
    assert "Unknown transfer status" in result.output


def test_transfers_show(runner, transfer):
    result = runner.invoke(args=["transfers", "show", str(transfer.id)])

    assert result.exit_code == 0
    assert f"Transfer {transfer.transfer_number} [initiated]" in result.output
    assert "Courier: DHL" in result.output
    assert "sent=4" in result.output
    assert "transfer_initiated" in result.output


def test_transfers_show_missing(runner):
    result = runner.invoke(args=["transfers", "show", "987654"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_inventory_available(runner, transfer, warehouse_a, product, check_in):
    check_in(warehouse_a, product, 5, "LOT-A")

    generic = runner.invoke(args=["inventory", "available", "--warehouse-id", str(warehouse_a.id)])
    assert generic.exit_code == 0
    assert "available=11" in generic.output

    batches = runner.invoke(args=["inventory", "available", "--warehouse-id", str(warehouse_a.id), "--batches"])
    assert batches.exit_code == 0
    assert "LOT-A" in batches.output
    assert "available=5" in batches.output


def test_inventory_ledger(runner, warehouse_a, product, check_in):
    check_in(warehouse_a, product, 5, "LOT-A")

    result = runner.invoke(args=[
        "inventory", "ledger", "--warehouse-id", str(warehouse_a.id), "--product-id", str(product.id),
    ])

    assert result.exit_code == 0
    assert "IN  check_in" in result.output
    assert "qty=5" in result.output
