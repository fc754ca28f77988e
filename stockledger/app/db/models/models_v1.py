from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.app.db.base import Base
from stockledger.app.db.models.core_types import (
    Role,
    BaseUnit,
    MovementType,
    MovementReason,
    POStatus,
    PayableStatus,
    AuditStatus,
)

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

Quantity = Numeric(14, 3)
Money = Numeric(14, 2)
UnitCost = Numeric(14, 4)
Rate = Numeric(6, 4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------- TENANCY / MASTER DATA ----------
class Tenant(Base):
    __tablename__ = "tenants"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Warehouse(Base):
    __tablename__ = "warehouses"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_warehouse_tenant_name"),)


class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    payment_term_days: Mapped[int | None] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_supplier_tenant_name"),
        CheckConstraint("payment_term_days >= 0", name="ck_supplier_payment_term_nonneg"),
    )


class ProductFamily(Base):
    __tablename__ = "product_families"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_unit: Mapped[BaseUnit] = mapped_column(Enum(BaseUnit, name="base_unit"), nullable=False)
    target_stock_base: Mapped[Decimal] = mapped_column(Quantity, default=0, nullable=False)

    products: Mapped[list["Product"]] = relationship(back_populates="family")

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_family_tenant_name"),
        CheckConstraint("target_stock_base >= 0", name="ck_family_target_nonneg"),
    )


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    uom: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(64))
    family_id: Mapped[int | None] = mapped_column(ForeignKey("product_families.id", ondelete="SET NULL"))
    # stocking unit -> family base unit
    conversion_factor: Mapped[Decimal] = mapped_column(UnitCost, default=1, nullable=False)
    stock_min: Mapped[Decimal] = mapped_column(Quantity, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    family: Mapped[ProductFamily | None] = relationship(back_populates="products")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
        UniqueConstraint("tenant_id", "barcode", name="uq_product_tenant_barcode"),
        CheckConstraint("conversion_factor > 0", name="ck_product_conversion_pos"),
    )


# ---------- LEDGER ----------
class Batch(Base):
    __tablename__ = "batches"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="SET NULL"))

    batch_number: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity_initial: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_current: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    is_exhausted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()
    warehouse: Mapped[Warehouse] = relationship()

    __table_args__ = (
        UniqueConstraint("tenant_id", "batch_number", name="uq_batch_tenant_number"),
        CheckConstraint("quantity_current >= 0", name="ck_batch_qty_current_nonneg"),
        CheckConstraint("quantity_current <= quantity_initial", name="ck_batch_qty_current_le_initial"),
        CheckConstraint("unit_cost >= 0", name="ck_batch_unit_cost_nonneg"),
        Index("ix_batches_fifo", "tenant_id", "product_id", "warehouse_id", "is_exhausted", "created_at"),
    )


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False, index=True)
    # origin for OUT, destination for IN
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    counterpart_warehouse_id: Mapped[int | None] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"))

    type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    reason: Mapped[MovementReason | None] = mapped_column(Enum(MovementReason, name="movement_reason"))
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(UnitCost)
    total_cost: Mapped[Decimal | None] = mapped_column(Money)
    stock_before: Mapped[Decimal | None] = mapped_column(Quantity)
    stock_after: Mapped[Decimal | None] = mapped_column(Quantity)

    reference_type: Mapped[str | None] = mapped_column(String(64))
    reference_id: Mapped[str | None] = mapped_column(String(128))
    destination_type: Mapped[str | None] = mapped_column(String(64))
    destination_ref: Mapped[str | None] = mapped_column(String(128))
    notes: Mapped[str | None] = mapped_column(Text)

    performed_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    batch: Mapped[Batch] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_qty_pos"),
        Index("ix_movements_tenant_product_time", "tenant_id", "product_id", "created_at"),
    )


# ---------- PROCUREMENT ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[POStatus] = mapped_column(Enum(POStatus, name="po_status"), default=POStatus.draft, nullable=False)

    expected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_term_days: Mapped[int | None] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    # derived from items, refreshed on every item change
    subtotal: Mapped[Decimal] = mapped_column(Money, default=0, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ordered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    supplier: Mapped[Supplier] = relationship()
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_po_tenant_number"),
        CheckConstraint("payment_term_days >= 0", name="ck_po_payment_term_nonneg"),
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(Quantity, default=0, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(UnitCost, nullable=False)
    discount: Mapped[Decimal] = mapped_column(Money, default=0, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Rate, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    order: Mapped[PurchaseOrder] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_po_item_order_product"),
        CheckConstraint("quantity_ordered > 0", name="ck_po_item_qty_pos"),
        CheckConstraint("quantity_received >= 0", name="ck_po_item_received_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_po_item_price_nonneg"),
        CheckConstraint("discount >= 0", name="ck_po_item_discount_nonneg"),
        CheckConstraint("tax_rate >= 0", name="ck_po_item_tax_nonneg"),
    )


# ---------- PAYABLES ----------
class AccountPayable(Base):
    __tablename__ = "accounts_payable"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    purchase_order_id: Mapped[int | None] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        unique=True,
    )
    invoice_number: Mapped[str | None] = mapped_column(String(64))

    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Money, default=0, nullable=False)
    balance_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    status: Mapped[PayableStatus] = mapped_column(
        Enum(PayableStatus, name="payable_status"),
        default=PayableStatus.current,
        nullable=False,
    )
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    supplier: Mapped[Supplier] = relationship()
    payments: Mapped[list["PaymentRecord"]] = relationship(
        back_populates="payable",
        order_by="PaymentRecord.paid_at.desc()",
    )

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_payable_paid_nonneg"),
        CheckConstraint("balance_amount >= 0", name="ck_payable_balance_nonneg"),
        Index("ix_payables_tenant_status_due", "tenant_id", "status", "due_date"),
    )


class PaymentRecord(Base):
    __tablename__ = "payment_records"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    payable_id: Mapped[int] = mapped_column(
        ForeignKey("accounts_payable.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    payable: Mapped[AccountPayable] = relationship(back_populates="payments")

    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_amount_pos"),)


# ---------- AUDITS (cycle counts) ----------
class InventoryAudit(Base):
    __tablename__ = "inventory_audits"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[AuditStatus] = mapped_column(
        Enum(AuditStatus, name="audit_status"),
        default=AuditStatus.pending,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)

    # filled when the audit is closed
    total_variance: Mapped[Decimal | None] = mapped_column(Quantity)
    variance_cost: Mapped[Decimal | None] = mapped_column(Money)
    closed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"))

    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    warehouse: Mapped[Warehouse] = relationship()
    items: Mapped[list["InventoryAuditItem"]] = relationship(
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="InventoryAuditItem.id",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_audit_tenant_code"),
        Index("ix_audits_tenant_status", "tenant_id", "status"),
    )


class InventoryAuditItem(Base):
    __tablename__ = "inventory_audit_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    audit_id: Mapped[int] = mapped_column(ForeignKey("inventory_audits.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    # stock on the books when the audit was opened
    system_stock: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    counted_stock: Mapped[Decimal | None] = mapped_column(Quantity)
    variance: Mapped[Decimal | None] = mapped_column(Quantity)
    variance_cost: Mapped[Decimal | None] = mapped_column(Money)
    is_adjusted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    audit: Mapped[InventoryAudit] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        UniqueConstraint("audit_id", "product_id", name="uq_audit_item_product"),
        CheckConstraint("system_stock >= 0", name="ck_audit_item_system_nonneg"),
        CheckConstraint("counted_stock >= 0", name="ck_audit_item_counted_nonneg"),
    )
