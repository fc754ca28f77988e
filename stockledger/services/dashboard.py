from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import (
    Batch,
    InventoryMovement,
    Product,
    PurchaseOrder,
    Supplier,
    Warehouse,
)
from stockledger.app.db.models.core_types import POStatus
from stockledger.services.inventory import to_decimal

logger = logging.getLogger(__name__)

PENDING_PO_STATUSES = {POStatus.sent, POStatus.partial}


def _count(db: Session, stmt) -> int:
    return int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())


def get_dashboard_stats(db: Session, tenant_id: int, recent_limit: int = 10) -> dict:
    """
    Read-only tenant aggregates.

    Stock figures come from open batches only; a product is out of stock at
    zero and low on stock when 0 < stock < stock_min.
    """
    products = (
        db.execute(select(Product).where(Product.tenant_id == tenant_id, Product.active.is_(True)))
        .scalars()
        .all()
    )
    stock_rows = db.execute(
        select(Batch.product_id, func.sum(Batch.quantity_current))
        .where(Batch.tenant_id == tenant_id)
        .where(Batch.is_exhausted.is_(False))
        .group_by(Batch.product_id)
    ).all()
    stock = {int(pid): to_decimal(qty or 0) for pid, qty in stock_rows}

    out_of_stock = 0
    low_stock = 0
    for product in products:
        on_hand = stock.get(product.id, Decimal("0"))
        if on_hand == 0:
            out_of_stock += 1
        elif on_hand < to_decimal(product.stock_min or 0):
            low_stock += 1

    open_batches = db.execute(
        select(Batch.quantity_current, Batch.unit_cost)
        .where(Batch.tenant_id == tenant_id)
        .where(Batch.is_exhausted.is_(False))
    ).all()
    inventory_value = sum((to_decimal(q) * to_decimal(c) for q, c in open_batches), Decimal("0"))

    recent = (
        db.execute(
            select(InventoryMovement)
            .where(InventoryMovement.tenant_id == tenant_id)
            .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
            .limit(recent_limit)
        )
        .scalars()
        .all()
    )

    orders = select(PurchaseOrder.id).where(PurchaseOrder.tenant_id == tenant_id)
    suppliers = select(Supplier.id).where(Supplier.tenant_id == tenant_id)

    stats = {
        "products": {
            "total": len(products),
            "low_stock": low_stock,
            "out_of_stock": out_of_stock,
        },
        "suppliers": {
            "total": _count(db, suppliers),
            "active": _count(db, suppliers.where(Supplier.active.is_(True))),
        },
        "purchase_orders": {
            "total": _count(db, orders),
            "pending": _count(db, orders.where(PurchaseOrder.status.in_(PENDING_PO_STATUSES))),
            "received": _count(db, orders.where(PurchaseOrder.status == POStatus.received)),
        },
        "inventory": {
            "total_value": inventory_value,
            "open_batches": len(open_batches),
            "movements": _count(
                db, select(InventoryMovement.id).where(InventoryMovement.tenant_id == tenant_id)
            ),
        },
        "warehouses": {
            "total": _count(
                db, select(Warehouse.id).where(Warehouse.tenant_id == tenant_id, Warehouse.active.is_(True))
            ),
        },
        "recent_activity": [
            {
                "id": m.id,
                "type": m.type.value,
                "reason": m.reason.value if m.reason else None,
                "product_id": m.product_id,
                "quantity": m.quantity,
                "total_cost": m.total_cost,
                "created_at": m.created_at,
            }
            for m in recent
        ],
    }
    logger.debug("Dashboard stats for tenant %s: %s", tenant_id, stats["inventory"])
    return stats
