from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import Batch, Product, ProductFamily
from stockledger.app.db.models.core_types import BaseUnit
from stockledger.services.errors import NotFound
from stockledger.services.inventory import to_decimal
from stockledger.services.pagination import Page, paginate

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass
class FamilyProductStock:
    product_id: int
    sku: str
    name: str
    conversion_factor: Decimal
    unit_stock: Decimal
    base_stock: Decimal
    percentage_of_family: float = 0.0


@dataclass
class FamilyStockResult:
    family_id: int
    family_name: str
    base_unit: BaseUnit
    target_stock_base: Decimal
    current_stock_base: Decimal
    deficit: Decimal
    percentage_of_target: float
    products: list[FamilyProductStock] = field(default_factory=list)


def _percentage(part: Decimal, whole: Decimal) -> float:
    if whole == 0:
        return 0.0
    return float(round(part / whole * HUNDRED, 2))


def get_family(db: Session, tenant_id: int, family_id: int) -> ProductFamily:
    family = db.execute(
        select(ProductFamily).where(ProductFamily.id == family_id, ProductFamily.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not family:
        raise NotFound(f"Product family {family_id} not found")
    return family


def list_families(
    db: Session,
    tenant_id: int,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> Page[ProductFamily]:
    stmt = select(ProductFamily).where(ProductFamily.tenant_id == tenant_id)
    if search:
        stmt = stmt.where(func.lower(ProductFamily.name).like(f"%{search.lower()}%"))
    stmt = stmt.order_by(ProductFamily.name.asc())
    return paginate(db, stmt, page=page, limit=limit)


def get_family_stock(db: Session, tenant_id: int, family_id: int) -> FamilyStockResult:
    """
    Stock of a family expressed in its base unit.

    For each active product:
        unit_stock = SUM(quantity_current) over its open batches (all warehouses)
        base_stock = unit_stock * conversion_factor

    deficit = target - current (negative means surplus).
    """
    family = get_family(db, tenant_id, family_id)

    products = (
        db.execute(
            select(Product)
            .where(Product.tenant_id == tenant_id)
            .where(Product.family_id == family.id)
            .where(Product.active.is_(True))
            .order_by(Product.sku)
        )
        .scalars()
        .all()
    )

    unit_stock_by_product: dict[int, Decimal] = {}
    if products:
        rows = db.execute(
            select(Batch.product_id, func.sum(Batch.quantity_current))
            .where(Batch.tenant_id == tenant_id)
            .where(Batch.product_id.in_([p.id for p in products]))
            .where(Batch.is_exhausted.is_(False))
            .where(Batch.quantity_current > 0)
            .group_by(Batch.product_id)
        ).all()
        unit_stock_by_product = {int(pid): to_decimal(qty) for pid, qty in rows}

    lines: list[FamilyProductStock] = []
    total_base = Decimal("0")
    for product in products:
        unit_stock = unit_stock_by_product.get(product.id, Decimal("0"))
        factor = to_decimal(product.conversion_factor or 1)
        base_stock = unit_stock * factor
        total_base += base_stock
        lines.append(
            FamilyProductStock(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                conversion_factor=factor,
                unit_stock=unit_stock,
                base_stock=base_stock,
            )
        )

    for line in lines:
        line.percentage_of_family = _percentage(line.base_stock, total_base)

    target = to_decimal(family.target_stock_base or 0)
    result = FamilyStockResult(
        family_id=family.id,
        family_name=family.name,
        base_unit=family.base_unit,
        target_stock_base=target,
        current_stock_base=total_base,
        deficit=target - total_base,
        percentage_of_target=_percentage(total_base, target),
        products=lines,
    )

    logger.info(
        "Family %s: %s %s (%.1f%% of target)",
        family.name,
        total_base,
        family.base_unit.value,
        result.percentage_of_target,
    )
    return result


def get_families_with_deficit(db: Session, tenant_id: int) -> list[FamilyStockResult]:
    """Families below target, most critical (lowest % of target) first."""
    family_ids = db.execute(
        select(ProductFamily.id).where(ProductFamily.tenant_id == tenant_id).order_by(ProductFamily.id)
    ).scalars().all()

    short = []
    for family_id in family_ids:
        stock = get_family_stock(db, tenant_id, family_id)
        if stock.deficit > 0:
            short.append(stock)

    short.sort(key=lambda s: s.percentage_of_target)
    return short
