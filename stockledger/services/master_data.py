"""
Tenant master data: products, suppliers and warehouses.

SKU, barcode, supplier name and warehouse name are unique per tenant. A
pre-check reports the usual collision; the unique constraints catch two
concurrent creates and are mapped to the same Conflict.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import Product, Supplier, Warehouse
from stockledger.app.db.session import transaction
from stockledger.app.schemas.master_data import ProductCreate, ProductQuery, SupplierCreate, WarehouseCreate
from stockledger.services.errors import Conflict, violates_unique
from stockledger.services.families import get_family
from stockledger.services.pagination import Page, paginate

logger = logging.getLogger(__name__)

# constraint name -> (SQLite "table.column" list, message)
PRODUCT_UNIQUES = {
    "uq_product_tenant_sku": (("products.tenant_id", "products.sku"), "Product SKU already exists"),
    "uq_product_tenant_barcode": (("products.tenant_id", "products.barcode"), "Product barcode already exists"),
}
SUPPLIER_UNIQUES = {
    "uq_supplier_tenant_name": (("suppliers.tenant_id", "suppliers.name"), "Supplier name already exists"),
}
WAREHOUSE_UNIQUES = {
    "uq_warehouse_tenant_name": (("warehouses.tenant_id", "warehouses.name"), "Warehouse name already exists"),
}


def _flush_or_conflict(db: Session, uniques: dict[str, tuple[tuple[str, ...], str]]) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        for constraint, (columns, message) in uniques.items():
            if violates_unique(exc, constraint, *columns):
                raise Conflict(message) from exc
        raise


def _exists(db: Session, stmt) -> bool:
    return db.execute(stmt.limit(1)).first() is not None


# ---------- Products ----------
def create_product(db: Session, tenant_id: int, dto: ProductCreate) -> Product:
    with transaction(db):
        if dto.family_id is not None:
            get_family(db, tenant_id, dto.family_id)

        if _exists(db, select(Product.id).where(Product.tenant_id == tenant_id, Product.sku == dto.sku)):
            raise Conflict(f'Product with SKU "{dto.sku}" already exists')
        if dto.barcode and _exists(
            db, select(Product.id).where(Product.tenant_id == tenant_id, Product.barcode == dto.barcode)
        ):
            raise Conflict(f'Product with barcode "{dto.barcode}" already exists')

        product = Product(
            tenant_id=tenant_id,
            sku=dto.sku,
            name=dto.name,
            uom=dto.uom,
            barcode=dto.barcode,
            family_id=dto.family_id,
            conversion_factor=dto.conversion_factor,
            stock_min=dto.stock_min,
            active=dto.active,
        )
        db.add(product)
        _flush_or_conflict(db, PRODUCT_UNIQUES)

    logger.info("Product created: %s (%s) for tenant %s", product.sku, product.name, tenant_id)
    return product


def list_products(db: Session, tenant_id: int, query: ProductQuery) -> Page[Product]:
    stmt = select(Product).where(Product.tenant_id == tenant_id)
    if not query.include_inactive:
        stmt = stmt.where(Product.active.is_(True))
    if query.family_id is not None:
        stmt = stmt.where(Product.family_id == query.family_id)
    if query.search:
        pattern = f"%{query.search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.sku).like(pattern),
                func.lower(Product.barcode).like(pattern),
            )
        )

    stmt = stmt.order_by(Product.name.asc(), Product.id.asc())
    return paginate(db, stmt, page=query.page, limit=query.limit)


# ---------- Suppliers ----------
def create_supplier(db: Session, tenant_id: int, dto: SupplierCreate) -> Supplier:
    with transaction(db):
        if _exists(db, select(Supplier.id).where(Supplier.tenant_id == tenant_id, Supplier.name == dto.name)):
            raise Conflict(f'Supplier "{dto.name}" already exists')

        supplier = Supplier(
            tenant_id=tenant_id,
            name=dto.name,
            email=dto.email,
            payment_term_days=dto.payment_term_days,
            active=dto.active,
        )
        db.add(supplier)
        _flush_or_conflict(db, SUPPLIER_UNIQUES)

    logger.info("Supplier created: %s for tenant %s", supplier.name, tenant_id)
    return supplier


def list_suppliers(
    db: Session,
    tenant_id: int,
    search: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Page[Supplier]:
    stmt = select(Supplier).where(Supplier.tenant_id == tenant_id)
    if not include_inactive:
        stmt = stmt.where(Supplier.active.is_(True))
    if search:
        stmt = stmt.where(func.lower(Supplier.name).like(f"%{search.lower()}%"))

    stmt = stmt.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(db, stmt, page=page, limit=limit)


# ---------- Warehouses ----------
def create_warehouse(db: Session, tenant_id: int, dto: WarehouseCreate) -> Warehouse:
    with transaction(db):
        if _exists(db, select(Warehouse.id).where(Warehouse.tenant_id == tenant_id, Warehouse.name == dto.name)):
            raise Conflict(f'Warehouse "{dto.name}" already exists')

        warehouse = Warehouse(tenant_id=tenant_id, name=dto.name, active=True)
        db.add(warehouse)
        _flush_or_conflict(db, WAREHOUSE_UNIQUES)

    logger.info("Warehouse created: %s for tenant %s", warehouse.name, tenant_id)
    return warehouse


def list_warehouses(db: Session, tenant_id: int) -> list[Warehouse]:
    return list(
        db.execute(
            select(Warehouse).where(Warehouse.tenant_id == tenant_id).order_by(Warehouse.name.asc(), Warehouse.id.asc())
        )
        .scalars()
        .all()
    )
