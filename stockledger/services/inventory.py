from __future__ import annotations

import logging
import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import (
    Batch,
    InventoryMovement,
    Product,
    Supplier,
    Warehouse,
    as_utc,
    utcnow,
)
from stockledger.app.db.models.core_types import ExpiryStatus, MovementReason, MovementType
from stockledger.app.db.session import transaction
from stockledger.app.schemas.inventory import InboundCreate, MovementQuery, OutboundCreate, TransferCreate
from stockledger.services.errors import DuplicateBatch, InsufficientStock, InvalidArgument, NotFound, violates_unique
from stockledger.services.pagination import Page, paginate

logger = logging.getLogger(__name__)

BATCH_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
WARNING_EXPIRY_DAYS = 7

# decimal places of the Quantity, Money and UnitCost columns
QUANTITY_PLACES = 3
MONEY_PLACES = 2
UNIT_COST_PLACES = 4


@dataclass
class InboundResult:
    batch: Batch
    movement: InventoryMovement


@dataclass
class OutboundResult:
    total_quantity: Decimal
    movements: list[InventoryMovement] = field(default_factory=list)

    @property
    def affected_batches(self) -> int:
        return len(self.movements)


@dataclass
class TransferResult:
    outbound: list[InventoryMovement] = field(default_factory=list)
    inbound: list[InventoryMovement] = field(default_factory=list)
    batches: list[Batch] = field(default_factory=list)


@dataclass
class ProductStock:
    product_id: int
    warehouse_id: int
    total_stock: Decimal
    batches: list[Batch]


@dataclass
class ExpiringBatch:
    batch: Batch
    days_until_expiry: int
    status: ExpiryStatus


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_scaled(value, places: int, name: str) -> Decimal:
    """
    Decimal carrying at most `places` decimals.

    Finer values raise InvalidArgument and are never rounded, so what is
    stored always equals what the caller asked for.
    """
    value = to_decimal(value)
    try:
        exact = value == value.quantize(Decimal(1).scaleb(-places))
    except InvalidOperation as exc:
        raise InvalidArgument(f"{name} is not a valid amount") from exc
    if not exact:
        raise InvalidArgument(f"{name} allows at most {places} decimal places")
    return value


def generate_batch_number() -> str:
    """B-<epoch millis>-<4 base36 chars>"""
    suffix = "".join(random.choices(BATCH_SUFFIX_ALPHABET, k=4))
    return f"B-{int(time.time() * 1000)}-{suffix}"


# ---------- Tenant-scoped lookups ----------
def get_product(db: Session, tenant_id: int, product_id: int) -> Product:
    product = db.execute(
        select(Product).where(Product.id == product_id, Product.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not product:
        raise NotFound(f"Product {product_id} not found")
    return product


def get_warehouse(db: Session, tenant_id: int, warehouse_id: int) -> Warehouse:
    warehouse = db.execute(
        select(Warehouse).where(Warehouse.id == warehouse_id, Warehouse.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not warehouse:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    return warehouse


def get_supplier(db: Session, tenant_id: int, supplier_id: int) -> Supplier:
    supplier = db.execute(
        select(Supplier).where(Supplier.id == supplier_id, Supplier.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not supplier:
        raise NotFound(f"Supplier {supplier_id} not found")
    return supplier


# ---------- Ledger primitives (caller owns the transaction) ----------
def create_batch(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    product_id: int,
    warehouse_id: int,
    quantity,
    unit_cost,
    batch_number: str | None = None,
    expires_at: datetime | None = None,
    supplier_id: int | None = None,
    reason: MovementReason | None = None,
    counterpart_warehouse_id: int | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> tuple[Batch, InventoryMovement]:
    """
    Open a new batch and write its IN movement.

    Flushes but never commits: inbound registration, goods receipts and
    transfers each wrap this in their own single transaction.
    """
    quantity = to_scaled(quantity, QUANTITY_PLACES, "quantity")
    unit_cost = to_scaled(unit_cost, UNIT_COST_PLACES, "unit_cost")
    if quantity <= 0:
        raise InvalidArgument("quantity must be greater than 0")
    if unit_cost < 0:
        raise InvalidArgument("unit_cost must not be negative")

    number = batch_number or generate_batch_number()
    taken = db.execute(
        select(Batch.id).where(Batch.tenant_id == tenant_id, Batch.batch_number == number)
    ).first()
    if taken:
        raise DuplicateBatch(number)

    batch = Batch(
        tenant_id=tenant_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        supplier_id=supplier_id,
        batch_number=number,
        quantity_initial=quantity,
        quantity_current=quantity,
        unit_cost=unit_cost,
        is_exhausted=False,
        received_at=utcnow(),
        expires_at=expires_at,
    )
    db.add(batch)

    # Concurrent insert of the same number loses on the unique constraint
    try:
        db.flush()
    except IntegrityError as exc:
        if violates_unique(exc, "uq_batch_tenant_number", "batches.tenant_id", "batches.batch_number"):
            raise DuplicateBatch(number) from exc
        raise

    movement = InventoryMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        batch_id=batch.id,
        warehouse_id=warehouse_id,
        counterpart_warehouse_id=counterpart_warehouse_id,
        type=MovementType.inbound,
        reason=reason,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=quantity * unit_cost,
        stock_before=Decimal("0"),
        stock_after=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        performed_by=user_id,
    )
    db.add(movement)
    db.flush()
    return batch, movement


def consume_fifo(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    product_id: int,
    warehouse_id: int,
    quantity,
    reason: MovementReason,
    counterpart_warehouse_id: int | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    destination_type: str | None = None,
    destination_ref: str | None = None,
    notes: str | None = None,
) -> list[InventoryMovement]:
    """
    Debit `quantity` from the open batches of one product in one warehouse,
    oldest batch first.

    Rules:
    - order is creation time, then batch id; expiry dates play no part
    - one OUT movement per touched batch, with that batch's stock before/after
    - the whole request is served or nothing is written (InsufficientStock)

    The candidate rows are locked (SELECT ... FOR UPDATE) so two concurrent
    consumptions on the same product/warehouse serialize instead of both
    debiting the same quantity. Caller owns the transaction.
    """
    quantity = to_scaled(quantity, QUANTITY_PLACES, "quantity")
    if quantity <= 0:
        raise InvalidArgument("quantity must be greater than 0")

    batches = (
        db.execute(
            select(Batch)
            .where(Batch.tenant_id == tenant_id)
            .where(Batch.product_id == product_id)
            .where(Batch.warehouse_id == warehouse_id)
            .where(Batch.is_exhausted.is_(False))
            .where(Batch.quantity_current > 0)
            .order_by(Batch.created_at.asc(), Batch.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )

    available = sum((b.quantity_current for b in batches), Decimal("0"))
    if available < quantity:
        raise InsufficientStock(requested=quantity, available=available)

    remaining = quantity
    movements: list[InventoryMovement] = []
    for batch in batches:
        if remaining <= 0:
            break

        before = batch.quantity_current
        debit = min(remaining, before)
        after = before - debit

        batch.quantity_current = after
        batch.is_exhausted = after == 0

        movement = InventoryMovement(
            tenant_id=tenant_id,
            product_id=product_id,
            batch_id=batch.id,
            warehouse_id=warehouse_id,
            counterpart_warehouse_id=counterpart_warehouse_id,
            type=MovementType.outbound,
            reason=reason,
            quantity=debit,
            unit_cost=batch.unit_cost,
            total_cost=debit * batch.unit_cost,
            stock_before=before,
            stock_after=after,
            reference_type=reference_type,
            reference_id=reference_id,
            destination_type=destination_type,
            destination_ref=destination_ref,
            notes=notes,
            performed_by=user_id,
        )
        db.add(movement)
        movements.append(movement)
        remaining -= debit

    db.flush()
    return movements


# ---------- Operations ----------
def register_inbound(db: Session, tenant_id: int, user_id: int, dto: InboundCreate) -> InboundResult:
    logger.info("Registering inbound: %s units of product %s", dto.quantity, dto.product_id)

    try:
        with transaction(db):
            get_product(db, tenant_id, dto.product_id)
            get_warehouse(db, tenant_id, dto.warehouse_id)
            if dto.supplier_id is not None:
                get_supplier(db, tenant_id, dto.supplier_id)

            batch, movement = create_batch(
                db,
                tenant_id=tenant_id,
                user_id=user_id,
                product_id=dto.product_id,
                warehouse_id=dto.warehouse_id,
                quantity=dto.quantity,
                unit_cost=dto.unit_cost,
                batch_number=dto.batch_number,
                expires_at=dto.expires_at,
                supplier_id=dto.supplier_id,
                notes=dto.notes,
            )
    except Exception:
        logger.warning("Inbound registration rolled back (tenant=%s, product=%s)", tenant_id, dto.product_id)
        raise

    logger.info("Inbound registered: batch %s with %s units", batch.batch_number, batch.quantity_initial)
    return InboundResult(batch=batch, movement=movement)


def register_outbound(db: Session, tenant_id: int, user_id: int, dto: OutboundCreate) -> OutboundResult:
    logger.info("Registering outbound: %s units of product %s (FIFO)", dto.quantity, dto.product_id)

    try:
        with transaction(db):
            get_product(db, tenant_id, dto.product_id)
            get_warehouse(db, tenant_id, dto.warehouse_id)

            movements = consume_fifo(
                db,
                tenant_id=tenant_id,
                user_id=user_id,
                product_id=dto.product_id,
                warehouse_id=dto.warehouse_id,
                quantity=dto.quantity,
                reason=dto.reason,
                reference_type=dto.reason.value,
                reference_id=dto.reference_id,
                destination_type=dto.destination_type,
                destination_ref=dto.destination_ref,
                notes=dto.notes,
            )
    except Exception:
        logger.warning("Outbound registration rolled back (tenant=%s, product=%s)", tenant_id, dto.product_id)
        raise

    result = OutboundResult(total_quantity=to_decimal(dto.quantity), movements=movements)
    logger.info("Outbound registered: %s units using %d batch(es)", result.total_quantity, result.affected_batches)
    return result


def register_transfer(db: Session, tenant_id: int, user_id: int, dto: TransferCreate) -> TransferResult:
    """
    Move stock between two warehouses of the same tenant.

    Each item is consumed FIFO at the origin; every consumed slice becomes a
    new batch at the destination carrying the source batch's cost, expiry and
    supplier, with an IN movement pointing back at the OUT movement.
    """
    if dto.origin_warehouse_id == dto.destination_warehouse_id:
        raise InvalidArgument("origin and destination warehouses must differ")

    logger.info(
        "Registering transfer from warehouse %s to %s (%d item(s))",
        dto.origin_warehouse_id,
        dto.destination_warehouse_id,
        len(dto.items),
    )

    result = TransferResult()
    try:
        with transaction(db):
            get_warehouse(db, tenant_id, dto.origin_warehouse_id)
            get_warehouse(db, tenant_id, dto.destination_warehouse_id)

            for item in dto.items:
                get_product(db, tenant_id, item.product_id)

                out_movements = consume_fifo(
                    db,
                    tenant_id=tenant_id,
                    user_id=user_id,
                    product_id=item.product_id,
                    warehouse_id=dto.origin_warehouse_id,
                    quantity=item.quantity,
                    reason=MovementReason.transfer,
                    counterpart_warehouse_id=dto.destination_warehouse_id,
                    notes=dto.notes,
                )
                result.outbound.extend(out_movements)

                for out in out_movements:
                    source = out.batch
                    batch, movement = create_batch(
                        db,
                        tenant_id=tenant_id,
                        user_id=user_id,
                        product_id=item.product_id,
                        warehouse_id=dto.destination_warehouse_id,
                        quantity=out.quantity,
                        unit_cost=out.unit_cost or Decimal("0"),
                        expires_at=source.expires_at,
                        supplier_id=source.supplier_id,
                        reason=MovementReason.transfer,
                        counterpart_warehouse_id=dto.origin_warehouse_id,
                        reference_type="MOVEMENT",
                        reference_id=str(out.id),
                        notes=f"Transfer from batch {source.batch_number}",
                    )
                    result.batches.append(batch)
                    result.inbound.append(movement)
    except Exception:
        logger.warning(
            "Transfer rolled back (tenant=%s, from=%s, to=%s)",
            tenant_id,
            dto.origin_warehouse_id,
            dto.destination_warehouse_id,
        )
        raise

    logger.info("Transfer registered: %d batch(es) created at destination", len(result.batches))
    return result


# ---------- Queries ----------
def get_product_stock(db: Session, tenant_id: int, product_id: int, warehouse_id: int) -> ProductStock:
    get_product(db, tenant_id, product_id)
    get_warehouse(db, tenant_id, warehouse_id)
    batches = (
        db.execute(
            select(Batch)
            .where(Batch.tenant_id == tenant_id)
            .where(Batch.product_id == product_id)
            .where(Batch.warehouse_id == warehouse_id)
            .where(Batch.is_exhausted.is_(False))
            .where(Batch.quantity_current > 0)
            .order_by(Batch.created_at.asc(), Batch.id.asc())
        )
        .scalars()
        .all()
    )
    total = sum((b.quantity_current for b in batches), Decimal("0"))
    return ProductStock(product_id=product_id, warehouse_id=warehouse_id, total_stock=total, batches=list(batches))


def get_expiring_batches(
    db: Session,
    tenant_id: int,
    days_ahead: int = 30,
    now: datetime | None = None,
) -> list[ExpiringBatch]:
    """
    Open batches whose expiry falls within `days_ahead` days (already
    expired ones included), soonest first.

    <= 0 days CRITICAL, <= 7 WARNING, otherwise UPCOMING.
    """
    now = now or utcnow()
    deadline = now + timedelta(days=days_ahead)

    batches = (
        db.execute(
            select(Batch)
            .where(Batch.tenant_id == tenant_id)
            .where(Batch.expires_at.is_not(None))
            .where(Batch.expires_at <= deadline)
            .where(Batch.is_exhausted.is_(False))
            .where(Batch.quantity_current > 0)
            .order_by(Batch.expires_at.asc(), Batch.id.asc())
        )
        .scalars()
        .all()
    )

    result = []
    for batch in batches:
        days = math.ceil((as_utc(batch.expires_at) - now).total_seconds() / 86400)
        if days <= 0:
            status = ExpiryStatus.critical
        elif days <= WARNING_EXPIRY_DAYS:
            status = ExpiryStatus.warning
        else:
            status = ExpiryStatus.upcoming
        result.append(ExpiringBatch(batch=batch, days_until_expiry=days, status=status))

    logger.info("Found %d batch(es) expiring within %d days for tenant %s", len(result), days_ahead, tenant_id)
    return result


def list_movements(db: Session, tenant_id: int, query: MovementQuery) -> Page[InventoryMovement]:
    stmt = select(InventoryMovement).where(InventoryMovement.tenant_id == tenant_id)

    if query.type is not None:
        stmt = stmt.where(InventoryMovement.type == query.type)
    if query.product_id is not None:
        stmt = stmt.where(InventoryMovement.product_id == query.product_id)
    if query.user_id is not None:
        stmt = stmt.where(InventoryMovement.performed_by == query.user_id)
    if query.warehouse_id is not None:
        stmt = stmt.where(
            or_(
                InventoryMovement.warehouse_id == query.warehouse_id,
                InventoryMovement.counterpart_warehouse_id == query.warehouse_id,
            )
        )
    if query.start_date is not None:
        stmt = stmt.where(InventoryMovement.created_at >= query.start_date)
    if query.end_date is not None:
        stmt = stmt.where(InventoryMovement.created_at <= query.end_date)
    if query.search:
        pattern = f"%{query.search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(InventoryMovement.reference_id).like(pattern),
                func.lower(InventoryMovement.notes).like(pattern),
            )
        )

    stmt = stmt.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    return paginate(db, stmt, page=query.page, limit=query.limit)
