"""inventory audits

Revision ID: 8d3f6a1c2e7b
Revises: 5b1e0c2a9f4d
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from stockledger.app.db.models.core_types import AuditStatus

# revision identifiers, used by Alembic.
revision: str = "8d3f6a1c2e7b"
down_revision: Union[str, Sequence[str], None] = "5b1e0c2a9f4d"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer, "sqlite")
QTY = sa.Numeric(14, 3)
MONEY = sa.Numeric(14, 2)
TS = sa.DateTime(timezone=True)


def _fk(target: str, ondelete: str = "RESTRICT"):
    return sa.ForeignKey(target, ondelete=ondelete)


def upgrade() -> None:
    op.create_table(
        "inventory_audits",
        sa.Column("id", PK, primary_key=True),
        sa.Column("tenant_id", PK, _fk("tenants.id"), nullable=False),
        sa.Column("warehouse_id", PK, _fk("warehouses.id"), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.Enum(AuditStatus, name="audit_status"), nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("total_variance", QTY),
        sa.Column("variance_cost", MONEY),
        sa.Column("closed_by", PK, _fk("users.id")),
        sa.Column("scheduled_at", TS),
        sa.Column("started_at", TS),
        sa.Column("completed_at", TS),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("tenant_id", "code", name="uq_audit_tenant_code"),
    )
    op.create_index("ix_audits_tenant_status", "inventory_audits", ["tenant_id", "status"])

    op.create_table(
        "inventory_audit_items",
        sa.Column("id", PK, primary_key=True),
        sa.Column("audit_id", PK, _fk("inventory_audits.id", "CASCADE"), nullable=False),
        sa.Column("product_id", PK, _fk("products.id"), nullable=False),
        sa.Column("system_stock", QTY, nullable=False),
        sa.Column("counted_stock", QTY),
        sa.Column("variance", QTY),
        sa.Column("variance_cost", MONEY),
        sa.Column("is_adjusted", sa.Boolean, nullable=False),
        sa.Column("notes", sa.Text),
        sa.UniqueConstraint("audit_id", "product_id", name="uq_audit_item_product"),
        sa.CheckConstraint("system_stock >= 0", name="ck_audit_item_system_nonneg"),
        sa.CheckConstraint("counted_stock >= 0", name="ck_audit_item_counted_nonneg"),
    )


def downgrade() -> None:
    op.drop_table("inventory_audit_items")
    op.drop_index("ix_audits_tenant_status", table_name="inventory_audits")
    op.drop_table("inventory_audits")

    sa.Enum(name="audit_status").drop(op.get_bind(), checkfirst=True)
