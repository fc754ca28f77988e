"""
Inventory audits (cycle counts).

An audit snapshots the book stock of every active product in one warehouse.
Operators then record what they physically counted, and closing the audit
posts the differences to the ledger as ADJUSTMENT movements:

- surplus: a new batch AUDIT-<code>-<sku> at the product's latest unit cost
- deficit: consumed FIFO from the warehouse's open batches

Items that were never counted are left alone.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import (
    Batch,
    InventoryAudit,
    InventoryAuditItem,
    InventoryMovement,
    Product,
    utcnow,
)
from stockledger.app.db.models.core_types import AuditStatus, MovementReason, can_transition
from stockledger.app.db.session import transaction
from stockledger.app.schemas.audits import AuditCreate, AuditItemUpdate, AuditQuery
from stockledger.services.errors import InvalidArgument, InvalidState, NotFound
from stockledger.services.inventory import (
    QUANTITY_PLACES,
    consume_fifo,
    create_batch,
    get_warehouse,
    to_decimal,
    to_scaled,
)
from stockledger.services.pagination import Page, paginate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
CODE_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
MAX_BATCH_NUMBER_LENGTH = 64


@dataclass
class AuditCloseResult:
    audit: InventoryAudit
    batches: list[Batch] = field(default_factory=list)
    movements: list[InventoryMovement] = field(default_factory=list)


def generate_audit_code() -> str:
    """AUD-<epoch millis>-<4 base36 chars>"""
    suffix = "".join(random.choices(CODE_SUFFIX_ALPHABET, k=4))
    return f"AUD-{int(time.time() * 1000)}-{suffix}"


def _surplus_batch_number(audit: InventoryAudit, product: Product) -> str:
    number = f"AUDIT-{audit.code}-{product.sku}"
    if len(number) > MAX_BATCH_NUMBER_LENGTH:
        number = f"AUDIT-{audit.code}-{product.id}"
    return number


def _transition(audit: InventoryAudit, target: AuditStatus) -> None:
    if not can_transition(audit.status, target):
        raise InvalidState(f"Audit {audit.code} cannot move from {audit.status.value} to {target.value}")
    audit.status = target


def _latest_unit_cost(db: Session, tenant_id: int, product_id: int) -> Decimal:
    cost = db.execute(
        select(Batch.unit_cost)
        .where(Batch.tenant_id == tenant_id)
        .where(Batch.product_id == product_id)
        .where(Batch.quantity_current > 0)
        .order_by(Batch.received_at.desc(), Batch.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    return to_decimal(cost) if cost is not None else Decimal("0")


def _open_stock(db: Session, tenant_id: int, product_id: int, warehouse_id: int) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(Batch.quantity_current), 0))
        .where(Batch.tenant_id == tenant_id)
        .where(Batch.product_id == product_id)
        .where(Batch.warehouse_id == warehouse_id)
        .where(Batch.is_exhausted.is_(False))
    ).scalar_one()
    return to_decimal(total)


def get_audit(db: Session, tenant_id: int, audit_id: int, *, lock: bool = False) -> InventoryAudit:
    stmt = select(InventoryAudit).where(InventoryAudit.id == audit_id, InventoryAudit.tenant_id == tenant_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    audit = db.execute(stmt).scalar_one_or_none()
    if not audit:
        raise NotFound(f"Audit {audit_id} not found")
    return audit


def list_audits(db: Session, tenant_id: int, query: AuditQuery) -> Page[InventoryAudit]:
    stmt = select(InventoryAudit).where(InventoryAudit.tenant_id == tenant_id)
    if query.warehouse_id is not None:
        stmt = stmt.where(InventoryAudit.warehouse_id == query.warehouse_id)
    if query.status is not None:
        stmt = stmt.where(InventoryAudit.status == query.status)

    stmt = stmt.order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc())
    return paginate(db, stmt, page=query.page, limit=query.limit)


def create_audit(db: Session, tenant_id: int, dto: AuditCreate) -> InventoryAudit:
    """Open a PENDING audit with one item per active product, holding its current warehouse stock."""
    with transaction(db):
        get_warehouse(db, tenant_id, dto.warehouse_id)

        product_ids = (
            db.execute(
                select(Product.id)
                .where(Product.tenant_id == tenant_id, Product.active.is_(True))
                .order_by(Product.id.asc())
            )
            .scalars()
            .all()
        )
        if not product_ids:
            raise InvalidArgument("There are no active products to audit")

        rows = db.execute(
            select(Batch.product_id, func.sum(Batch.quantity_current))
            .where(Batch.tenant_id == tenant_id)
            .where(Batch.warehouse_id == dto.warehouse_id)
            .where(Batch.is_exhausted.is_(False))
            .group_by(Batch.product_id)
        ).all()
        book_stock = {int(pid): to_decimal(qty or 0) for pid, qty in rows}

        audit = InventoryAudit(
            tenant_id=tenant_id,
            warehouse_id=dto.warehouse_id,
            code=generate_audit_code(),
            name=dto.name,
            status=AuditStatus.pending,
            scheduled_at=dto.scheduled_at,
            notes=dto.notes,
        )
        for product_id in product_ids:
            audit.items.append(
                InventoryAuditItem(
                    product_id=product_id,
                    system_stock=book_stock.get(product_id, Decimal("0")),
                    is_adjusted=False,
                )
            )
        db.add(audit)
        db.flush()

    logger.info("Audit %s opened on warehouse %s with %d item(s)", audit.code, audit.warehouse_id, len(audit.items))
    return audit


def update_audit_item(
    db: Session,
    tenant_id: int,
    audit_id: int,
    item_id: int,
    dto: AuditItemUpdate,
) -> InventoryAuditItem:
    """Record a physical count; the first count moves the audit to IN_PROGRESS."""
    counted = to_scaled(dto.counted_quantity, QUANTITY_PLACES, "counted_quantity")
    if counted < 0:
        raise InvalidArgument("counted_quantity must not be negative")

    with transaction(db):
        audit = get_audit(db, tenant_id, audit_id, lock=True)
        if audit.status not in (AuditStatus.pending, AuditStatus.in_progress):
            raise InvalidState(f"Audit {audit.code} is {audit.status.value} and can no longer be counted")

        item = next((i for i in audit.items if i.id == item_id), None)
        if item is None:
            raise NotFound(f"Item {item_id} not found on audit {audit.code}")

        if audit.status == AuditStatus.pending:
            _transition(audit, AuditStatus.in_progress)
            audit.started_at = utcnow()

        item.counted_stock = counted
        item.variance = counted - to_decimal(item.system_stock)
        if dto.notes is not None:
            item.notes = dto.notes
        db.flush()

    return item


def close_audit(db: Session, tenant_id: int, user_id: int, audit_id: int) -> AuditCloseResult:
    """
    Post every counted difference as an ADJUSTMENT and complete the audit.

    A deficit larger than the stock still open in the warehouse is adjusted
    down to zero and the remainder is logged. All of it commits together.
    """
    logger.info("Closing audit %s", audit_id)

    try:
        with transaction(db):
            audit = get_audit(db, tenant_id, audit_id, lock=True)
            _transition(audit, AuditStatus.completed)
            result = AuditCloseResult(audit=audit)
            reference = str(audit.id)

            total_variance = Decimal("0")
            variance_cost = Decimal("0")
            for item in audit.items:
                if item.counted_stock is None:
                    continue
                variance = to_decimal(item.variance or 0)
                if variance == 0:
                    continue

                if variance > 0:
                    unit_cost = _latest_unit_cost(db, tenant_id, item.product_id)
                    batch, movement = create_batch(
                        db,
                        tenant_id=tenant_id,
                        user_id=user_id,
                        product_id=item.product_id,
                        warehouse_id=audit.warehouse_id,
                        quantity=variance,
                        unit_cost=unit_cost,
                        batch_number=_surplus_batch_number(audit, item.product),
                        reason=MovementReason.adjustment,
                        reference_type="AUDIT",
                        reference_id=reference,
                        notes=f"Surplus found in audit {audit.code}",
                    )
                    result.batches.append(batch)
                    result.movements.append(movement)
                    item_cost = variance * unit_cost
                else:
                    deficit = -variance
                    available = _open_stock(db, tenant_id, item.product_id, audit.warehouse_id)
                    if available < deficit:
                        logger.warning(
                            "Audit %s: deficit of %s for product %s exceeds open stock %s",
                            audit.code,
                            deficit,
                            item.product_id,
                            available,
                        )
                    movements = []
                    if available > 0:
                        movements = consume_fifo(
                            db,
                            tenant_id=tenant_id,
                            user_id=user_id,
                            product_id=item.product_id,
                            warehouse_id=audit.warehouse_id,
                            quantity=min(deficit, available),
                            reason=MovementReason.adjustment,
                            reference_type="AUDIT",
                            reference_id=reference,
                            notes=f"Shortage found in audit {audit.code}",
                        )
                    result.movements.extend(movements)
                    item_cost = -sum((to_decimal(m.total_cost) for m in movements), Decimal("0"))

                item.variance_cost = item_cost.quantize(CENT, rounding=ROUND_HALF_UP)
                item.is_adjusted = True
                total_variance += variance
                variance_cost += item.variance_cost

            audit.total_variance = total_variance
            audit.variance_cost = variance_cost
            audit.closed_by = user_id
            audit.completed_at = utcnow()
            db.flush()
    except Exception:
        logger.warning("Closing audit %s rolled back", audit_id)
        raise

    logger.info(
        "Audit %s closed: variance %s, %d adjustment movement(s)",
        audit.code,
        audit.total_variance,
        len(result.movements),
    )
    return result


def cancel_audit(db: Session, tenant_id: int, audit_id: int) -> InventoryAudit:
    with transaction(db):
        audit = get_audit(db, tenant_id, audit_id, lock=True)
        _transition(audit, AuditStatus.cancelled)
        db.flush()

    logger.info("Audit cancelled: %s", audit.code)
    return audit
