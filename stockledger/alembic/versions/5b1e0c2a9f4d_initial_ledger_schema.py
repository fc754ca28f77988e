"""initial ledger schema

Revision ID: 5b1e0c2a9f4d
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from stockledger.app.db.models.core_types import (
    BaseUnit,
    MovementReason,
    MovementType,
    PayableStatus,
    POStatus,
    Role,
)

# revision identifiers, used by Alembic.
revision: str = "5b1e0c2a9f4d"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer, "sqlite")
QTY = sa.Numeric(14, 3)
MONEY = sa.Numeric(14, 2)
UNIT_COST = sa.Numeric(14, 4)
TS = sa.DateTime(timezone=True)


def _fk(target: str, ondelete: str = "RESTRICT"):
    return sa.ForeignKey(target, ondelete=ondelete)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("active", sa.Boolean, nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "users",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.Enum(Role, name="role"), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "warehouses",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False),
        sa.UniqueConstraint("tenant_id", "name", name="uq_warehouse_tenant_name"),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("payment_term_days", sa.Integer),
        sa.Column("active", sa.Boolean, nullable=False),
        sa.UniqueConstraint("tenant_id", "name", name="uq_supplier_tenant_name"),
        sa.CheckConstraint("payment_term_days >= 0", name="ck_supplier_payment_term_nonneg"),
    )

    op.create_table(
        "product_families",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("base_unit", sa.Enum(BaseUnit, name="base_unit"), nullable=False),
        sa.Column("target_stock_base", QTY, nullable=False),
        sa.UniqueConstraint("tenant_id", "name", name="uq_family_tenant_name"),
        sa.CheckConstraint("target_stock_base >= 0", name="ck_family_target_nonneg"),
    )

    op.create_table(
        "products",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False, index=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("uom", sa.String(32), nullable=False),
        sa.Column("barcode", sa.String(64)),
        sa.Column("family_id", PK, _fk("product_families.id", "SET NULL")),
        sa.Column("conversion_factor", UNIT_COST, nullable=False),
        sa.Column("stock_min", QTY, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
        sa.UniqueConstraint("tenant_id", "barcode", name="uq_product_tenant_barcode"),
        sa.CheckConstraint("conversion_factor > 0", name="ck_product_conversion_pos"),
    )

    op.create_table(
        "batches",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False),
        sa.Column("product_id", PK, _fk("products.id"), nullable=False),
        sa.Column("warehouse_id", PK, _fk("warehouses.id"), nullable=False),
        sa.Column("supplier_id", PK, _fk("suppliers.id", "SET NULL")),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("quantity_initial", QTY, nullable=False),
        sa.Column("quantity_current", QTY, nullable=False),
        sa.Column("unit_cost", UNIT_COST, nullable=False),
        sa.Column("is_exhausted", sa.Boolean, nullable=False),
        sa.Column("received_at", TS, nullable=False),
        sa.Column("expires_at", TS),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("tenant_id", "batch_number", name="uq_batch_tenant_number"),
        sa.CheckConstraint("quantity_current >= 0", name="ck_batch_qty_current_nonneg"),
        sa.CheckConstraint("quantity_current <= quantity_initial", name="ck_batch_qty_current_le_initial"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_batch_unit_cost_nonneg"),
    )
    op.create_index(
        "ix_batches_fifo",
        "batches",
        ["tenant_id", "product_id", "warehouse_id", "is_exhausted", "created_at"],
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False),
        sa.Column("product_id", PK, _fk("products.id"), nullable=False),
        sa.Column("batch_id", PK, _fk("batches.id"), nullable=False, index=True),
        sa.Column("warehouse_id", PK, _fk("warehouses.id"), nullable=False),
        sa.Column("counterpart_warehouse_id", PK, _fk("warehouses.id")),
        sa.Column("type", sa.Enum(MovementType, name="movement_type"), nullable=False),
        sa.Column("reason", sa.Enum(MovementReason, name="movement_reason")),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("unit_cost", UNIT_COST),
        sa.Column("total_cost", MONEY),
        sa.Column("stock_before", QTY),
        sa.Column("stock_after", QTY),
        sa.Column("reference_type", sa.String(64)),
        sa.Column("reference_id", sa.String(128)),
        sa.Column("destination_type", sa.String(64)),
        sa.Column("destination_ref", sa.String(128)),
        sa.Column("notes", sa.Text),
        sa.Column("performed_by", PK, _fk("users.id"), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_movement_qty_pos"),
    )
    op.create_index(
        "ix_movements_tenant_product_time",
        "inventory_movements",
        ["tenant_id", "product_id", "created_at"],
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("supplier_id", PK, _fk("suppliers.id"), nullable=False),
        sa.Column("status", sa.Enum(POStatus, name="po_status"), nullable=False),
        sa.Column("expected_at", TS),
        sa.Column("payment_term_days", sa.Integer),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("ordered_at", TS),
        sa.Column("received_at", TS),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_po_tenant_number"),
        sa.CheckConstraint("payment_term_days >= 0", name="ck_po_payment_term_nonneg"),
    )

    op.create_table(
        "purchase_order_items",
        sa.Column("id", PK, primary_key=True),
        sa.Column("order_id", PK, _fk("purchase_orders.id", "CASCADE"), nullable=False),
        sa.Column("product_id", PK, _fk("products.id"), nullable=False),
        sa.Column("quantity_ordered", QTY, nullable=False),
        sa.Column("quantity_received", QTY, nullable=False),
        sa.Column("unit_price", UNIT_COST, nullable=False),
        sa.Column("discount", MONEY, nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("notes", sa.Text),
        sa.UniqueConstraint("order_id", "product_id", name="uq_po_item_order_product"),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_po_item_received_nonneg"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_item_price_nonneg"),
        sa.CheckConstraint("discount >= 0", name="ck_po_item_discount_nonneg"),
        sa.CheckConstraint("tax_rate >= 0", name="ck_po_item_tax_nonneg"),
    )

    op.create_table(
        "accounts_payable",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False),
        sa.Column("supplier_id", PK, _fk("suppliers.id"), nullable=False),
        sa.Column("purchase_order_id", PK, _fk("purchase_orders.id"), unique=True),
        sa.Column("invoice_number", sa.String(64)),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False),
        sa.Column("balance_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.Enum(PayableStatus, name="payable_status"), nullable=False),
        sa.Column("issue_date", TS, nullable=False),
        sa.Column("due_date", TS, nullable=False),
        sa.Column("paid_at", TS),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("paid_amount >= 0", name="ck_payable_paid_nonneg"),
        sa.CheckConstraint("balance_amount >= 0", name="ck_payable_balance_nonneg"),
    )
    op.create_index(
        "ix_payables_tenant_status_due",
        "accounts_payable",
        ["tenant_id", "status", "due_date"],
    )

    op.create_table(
        "payment_records",
        sa.Column("id", PK, primary_key=True),
        sa.Column("payable_id", PK, _fk("accounts_payable.id"), nullable=False, index=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=False),
        sa.Column("reference", sa.String(255)),
        sa.Column("paid_at", TS, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_pos"),
    )


def downgrade() -> None:
    op.drop_table("payment_records")
    op.drop_index("ix_payables_tenant_status_due", table_name="accounts_payable")
    op.drop_table("accounts_payable")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_index("ix_movements_tenant_product_time", table_name="inventory_movements")
    op.drop_table("inventory_movements")
    op.drop_index("ix_batches_fifo", table_name="batches")
    op.drop_table("batches")
    op.drop_table("products")
    op.drop_table("product_families")
    op.drop_table("suppliers")
    op.drop_table("warehouses")
    op.drop_table("users")
    op.drop_table("tenants")

    bind = op.get_bind()
    for enum_name in ("payable_status", "po_status", "movement_reason", "movement_type", "base_unit", "role"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
