"""Warehouse transfers, inventory ledger and reconciliation tables

Revision ID: 20260129_warehouse_transfers
Revises:
Create Date: 2026-01-29
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260129_warehouse_transfers"
down_revision = None
branch_labels = None
depends_on = None


TRANSFER_STATUSES = ("initiated", "in_transit", "received", "partial_received", "rejected", "returned", "cancelled")
TRANSFER_ITEM_STATUSES = ("pending", "accepted", "partial_accepted", "rejected", "disposed", "returned")
LEDGER_ENTRY_TYPES = ("check_in", "check_out", "transfer_in", "transfer_out", "transfer_return")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouses", schema=None) as batch_op:
        batch_op.create_index("ix_warehouses_is_active", ["is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("warehouse_id", "document_type", name="uq_doc_sequences_warehouse_type"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)

    op.create_table(
        "warehouse_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_number", sa.String(50), nullable=False),
        sa.Column("source_warehouse_id", sa.Integer(), nullable=False),
        sa.Column("target_warehouse_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*TRANSFER_STATUSES, name="transfer_status", native_enum=False), nullable=False),
        sa.Column("initiated_by", sa.Integer(), nullable=False),
        sa.Column("initiated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("initiation_notes", sa.Text(), nullable=True),
        sa.Column("courier_name", sa.String(255), nullable=True),
        sa.Column("tracking_number", sa.String(255), nullable=True),
        sa.Column("expected_delivery_date", sa.Date(), nullable=True),
        sa.Column("dispatched_by", sa.Integer(), nullable=True),
        sa.Column("dispatch_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_by", sa.Integer(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("receipt_notes", sa.Text(), nullable=True),
        sa.Column("return_courier_name", sa.String(255), nullable=True),
        sa.Column("return_tracking_number", sa.String(255), nullable=True),
        sa.Column("return_dispatch_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("return_initiated_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("source_warehouse_id <> target_warehouse_id", name="ck_warehouse_transfers_different_warehouses"),
        sa.ForeignKeyConstraint(["source_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["target_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["initiated_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["dispatched_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["received_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["return_initiated_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["cancelled_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouse_transfers", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_transfers_source_warehouse_id", ["source_warehouse_id"], unique=False)
        batch_op.create_index("ix_warehouse_transfers_target_warehouse_id", ["target_warehouse_id"], unique=False)
        batch_op.create_index("ix_warehouse_transfers_status", ["status"], unique=False)
        batch_op.create_index("ix_warehouse_transfers_initiated_at", ["initiated_at"], unique=False)
        batch_op.create_index("ix_warehouse_transfers_source_status", ["source_warehouse_id", "status"], unique=False)

    op.create_table(
        "warehouse_transfer_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("batch_number", sa.String(255), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("quantity_sent", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_rejected", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_disposed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_returned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("item_status", sa.Enum(*TRANSFER_ITEM_STATUSES, name="transfer_item_status", native_enum=False), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("disposal_reason", sa.Text(), nullable=True),
        sa.Column("condition_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity_sent > 0", name="ck_transfer_items_sent_positive"),
        sa.CheckConstraint(
            "quantity_received >= 0 AND quantity_rejected >= 0 AND quantity_disposed >= 0 AND quantity_returned >= 0",
            name="ck_transfer_items_qty_nonneg",
        ),
        sa.CheckConstraint(
            "quantity_received + quantity_rejected + quantity_disposed <= quantity_sent",
            name="ck_transfer_items_outcome_le_sent",
        ),
        sa.CheckConstraint("quantity_returned <= quantity_rejected", name="ck_transfer_items_returned_le_rejected"),
        sa.ForeignKeyConstraint(["transfer_id"], ["warehouse_transfers.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouse_transfer_items", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_transfer_items_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_warehouse_transfer_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_transfer_items_product_batch", ["product_id", "batch_number"], unique=False)

    op.create_table(
        "warehouse_transfer_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("transfer_item_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("action_by", sa.Integer(), nullable=False),
        sa.Column("action_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("previous_status", sa.String(50), nullable=True),
        sa.Column("new_status", sa.String(50), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["transfer_id"], ["warehouse_transfers.id"]),
        sa.ForeignKeyConstraint(["transfer_item_id"], ["warehouse_transfer_items.id"]),
        sa.ForeignKeyConstraint(["action_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouse_transfer_logs", schema=None) as batch_op:
        batch_op.create_index("ix_warehouse_transfer_logs_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_warehouse_transfer_logs_action_at", ["action_at"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Enum(*LEDGER_ENTRY_TYPES, name="inventory_transaction_type", native_enum=False), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("source_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("target_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("batch_number", sa.String(255), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("transfer_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_transactions_qty_positive"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["source_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["target_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["transfer_id"], ["warehouse_transfers.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_inventory_transactions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_inventory_transactions_target_batch", ["target_warehouse_id", "batch_number"], unique=False)
        batch_op.create_index("ix_inventory_transactions_source_batch", ["source_warehouse_id", "batch_number"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("minimum_level", sa.Integer(), nullable=True),
        sa.Column("reorder_level", sa.Integer(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_qty_nonneg"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_items_product_warehouse"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_items_warehouse_id", ["warehouse_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("activity_logs", schema=None) as batch_op:
        batch_op.create_index("ix_activity_logs_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_activity_logs_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_activity_logs_entity", ["entity_type", "entity_id"], unique=False)


def downgrade():
    op.drop_table("activity_logs")
    op.drop_table("inventory_items")
    op.drop_table("inventory_transactions")
    op.drop_table("warehouse_transfer_logs")
    op.drop_table("warehouse_transfer_items")
    op.drop_table("warehouse_transfers")
    op.drop_table("document_sequences")
    op.drop_table("users")
    op.drop_table("products")
    op.drop_table("warehouses")
