"""
Procurement service.

Purchase order lifecycle (DRAFT -> SENT -> PARTIAL / RECEIVED, CANCELLED)
and the goods receipt workflow.

A receipt posts its stock through the ledger primitives of
stockledger.services.inventory and raises the supplier payable through
stockledger.services.payables, all inside one transaction.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import (
    AccountPayable,
    Batch,
    InventoryMovement,
    PurchaseOrder,
    PurchaseOrderItem,
    utcnow,
)
from stockledger.app.db.models.core_types import POStatus, RECEIVABLE_PO_STATUSES, can_transition
from stockledger.app.db.session import transaction
from stockledger.app.schemas.purchase_orders import POCreate, POItemCreate, POQuery, POUpdate, ReceiveGoods
from stockledger.services.errors import Conflict, InvalidArgument, InvalidState, NotFound
from stockledger.services.inventory import create_batch, get_product, get_supplier, get_warehouse, to_decimal
from stockledger.services.pagination import Page, paginate
from stockledger.services.payables import (
    DEFAULT_PAYMENT_TERM_DAYS,
    create_payable_for_order,
    find_payable_for_order,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass
class ReceiptResult:
    order: PurchaseOrder
    payable: AccountPayable
    payable_created: bool
    batches: list[Batch] = field(default_factory=list)
    movements: list[InventoryMovement] = field(default_factory=list)


def generate_order_number() -> str:
    """PO-<year>-<last 6 digits of epoch millis>"""
    millis = str(int(time.time() * 1000))
    return f"PO-{utcnow().year}-{millis[-6:]}"


def compute_order_totals(items: Iterable[PurchaseOrderItem]) -> OrderTotals:
    """
    Totals from the ordered lines:
        line_subtotal = quantity_ordered * unit_price - discount
        tax           = SUM(line_subtotal * tax_rate)
        total         = SUM(line_subtotal) + tax
    """
    subtotal = Decimal("0")
    tax = Decimal("0")
    for item in items:
        line = to_decimal(item.quantity_ordered) * to_decimal(item.unit_price) - to_decimal(item.discount or 0)
        subtotal += line
        tax += line * to_decimal(item.tax_rate or 0)

    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    tax = tax.quantize(CENT, rounding=ROUND_HALF_UP)
    return OrderTotals(subtotal=subtotal, tax_amount=tax, total=subtotal + tax)


def _refresh_totals(order: PurchaseOrder) -> OrderTotals:
    totals = compute_order_totals(order.items)
    order.subtotal = totals.subtotal
    order.tax_amount = totals.tax_amount
    order.total = totals.total
    return totals


def _transition(order: PurchaseOrder, target: POStatus) -> None:
    if not can_transition(order.status, target):
        raise InvalidState(
            f"Purchase order {order.order_number} cannot move from {order.status.value} to {target.value}"
        )
    order.status = target


def _require_draft(order: PurchaseOrder, action: str) -> None:
    if order.status != POStatus.draft:
        raise InvalidState(f"Can only {action} purchase orders in DRAFT (current: {order.status.value})")


def get_purchase_order(db: Session, tenant_id: int, order_id: int, *, lock: bool = False) -> PurchaseOrder:
    stmt = select(PurchaseOrder).where(
        PurchaseOrder.id == order_id,
        PurchaseOrder.tenant_id == tenant_id,
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    order = db.execute(stmt).scalar_one_or_none()
    if not order:
        raise NotFound(f"Purchase order {order_id} not found")
    return order


def list_purchase_orders(db: Session, tenant_id: int, query: POQuery) -> Page[PurchaseOrder]:
    stmt = select(PurchaseOrder).where(PurchaseOrder.tenant_id == tenant_id)
    if query.status is not None:
        stmt = stmt.where(PurchaseOrder.status == query.status)
    if query.supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == query.supplier_id)

    stmt = stmt.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return paginate(db, stmt, page=query.page, limit=query.limit)


# ---------- DRAFT editing ----------
def create_purchase_order(db: Session, tenant_id: int, dto: POCreate) -> PurchaseOrder:
    with transaction(db):
        get_supplier(db, tenant_id, dto.supplier_id)

        order_number = dto.order_number or generate_order_number()
        exists = db.execute(
            select(PurchaseOrder.id).where(
                PurchaseOrder.tenant_id == tenant_id,
                PurchaseOrder.order_number == order_number,
            )
        ).first()
        if exists:
            raise Conflict(f"Purchase order number {order_number} already exists")

        order = PurchaseOrder(
            tenant_id=tenant_id,
            supplier_id=dto.supplier_id,
            order_number=order_number,
            status=POStatus.draft,
            expected_at=dto.expected_at,
            payment_term_days=dto.payment_term_days,
            currency=dto.currency.upper(),
            notes=dto.notes,
        )
        db.add(order)
        db.flush()

    logger.info("Purchase order created: %s", order.order_number)
    return order


def update_purchase_order(db: Session, tenant_id: int, order_id: int, dto: POUpdate) -> PurchaseOrder:
    with transaction(db):
        order = get_purchase_order(db, tenant_id, order_id, lock=True)
        _require_draft(order, "update")

        changes = dto.model_dump(exclude_unset=True)
        if changes.get("currency"):
            changes["currency"] = changes["currency"].upper()
        else:
            changes.pop("currency", None)
        for name, value in changes.items():
            setattr(order, name, value)
        db.flush()

    return order


def add_item(db: Session, tenant_id: int, order_id: int, dto: POItemCreate) -> PurchaseOrderItem:
    with transaction(db):
        order = get_purchase_order(db, tenant_id, order_id, lock=True)
        _require_draft(order, "add items to")
        get_product(db, tenant_id, dto.product_id)

        if any(i.product_id == dto.product_id for i in order.items):
            raise Conflict(f"Product {dto.product_id} is already on this order, change the existing line instead")

        item = PurchaseOrderItem(
            product_id=dto.product_id,
            quantity_ordered=dto.quantity_ordered,
            quantity_received=Decimal("0"),
            unit_price=dto.unit_price,
            discount=dto.discount,
            tax_rate=dto.tax_rate,
            notes=dto.notes,
        )
        order.items.append(item)
        _refresh_totals(order)
        db.flush()

    return item


def remove_item(db: Session, tenant_id: int, order_id: int, item_id: int) -> PurchaseOrder:
    with transaction(db):
        order = get_purchase_order(db, tenant_id, order_id, lock=True)
        _require_draft(order, "remove items from")

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFound(f"Item {item_id} not found on purchase order {order.order_number}")

        order.items.remove(item)
        _refresh_totals(order)
        db.flush()

    return order


# ---------- Lifecycle ----------
def send_purchase_order(db: Session, tenant_id: int, order_id: int) -> PurchaseOrder:
    with transaction(db):
        order = get_purchase_order(db, tenant_id, order_id, lock=True)
        _require_draft(order, "send")
        if not order.items:
            raise InvalidState("Cannot send a purchase order without items")

        _refresh_totals(order)
        _transition(order, POStatus.sent)
        order.ordered_at = utcnow()
        db.flush()

    logger.info("Purchase order sent: %s", order.order_number)
    return order


def cancel_purchase_order(db: Session, tenant_id: int, order_id: int) -> PurchaseOrder:
    with transaction(db):
        order = get_purchase_order(db, tenant_id, order_id, lock=True)
        _transition(order, POStatus.cancelled)
        db.flush()

    logger.info("Purchase order cancelled: %s", order.order_number)
    return order


def receive_goods(
    db: Session,
    tenant_id: int,
    user_id: int,
    order_id: int,
    dto: ReceiveGoods,
) -> ReceiptResult:
    """
    Post a goods receipt against a SENT or PARTIAL order.

    Per received line:
    - open a batch at the actual received unit cost (this cost, not the
      ordered price, is what FIFO consumption later charges)
    - write its IN movement referencing the order
    - accumulate quantity_received on the order line

    Then the order moves to RECEIVED when every line is fully received,
    PARTIAL otherwise, and the first receipt raises the supplier payable
    for the ordered totals. Later receipts leave that payable untouched.

    All of it commits together or not at all.
    """
    logger.info("Receiving goods for purchase order %s", order_id)

    try:
        with transaction(db):
            # lock the order so concurrent receipts serialize (one payable per order)
            order = get_purchase_order(db, tenant_id, order_id, lock=True)
            if order.status not in RECEIVABLE_PO_STATUSES:
                raise InvalidState(
                    f"Goods can only be received on SENT or PARTIAL orders (current: {order.status.value})"
                )

            get_warehouse(db, tenant_id, dto.warehouse_id)

            lines = {item.product_id: item for item in order.items}
            for received in dto.items:
                if received.product_id not in lines:
                    raise InvalidArgument(
                        f"Product {received.product_id} is not on purchase order {order.order_number}"
                    )

            now = utcnow()
            result_batches: list[Batch] = []
            result_movements: list[InventoryMovement] = []

            for received in dto.items:
                line = lines[received.product_id]
                batch, movement = create_batch(
                    db,
                    tenant_id=tenant_id,
                    user_id=user_id,
                    product_id=received.product_id,
                    warehouse_id=dto.warehouse_id,
                    quantity=received.quantity_received,
                    unit_cost=received.unit_cost,
                    batch_number=received.batch_number,
                    expires_at=received.expires_at,
                    supplier_id=order.supplier_id,
                    reference_type="PURCHASE_ORDER",
                    reference_id=str(order.id),
                    notes=dto.notes or f"Receipt of purchase order {order.order_number}",
                )
                line.quantity_received = to_decimal(line.quantity_received) + to_decimal(received.quantity_received)
                result_batches.append(batch)
                result_movements.append(movement)

            fully_received = all(
                to_decimal(item.quantity_received) >= to_decimal(item.quantity_ordered) for item in order.items
            )
            _transition(order, POStatus.received if fully_received else POStatus.partial)
            if fully_received:
                order.received_at = now

            payable = find_payable_for_order(db, tenant_id, order.id)
            payable_created = payable is None
            if payable is None:
                totals = _refresh_totals(order)
                if order.payment_term_days is not None:
                    term_days = order.payment_term_days
                elif order.supplier.payment_term_days is not None:
                    term_days = order.supplier.payment_term_days
                else:
                    term_days = DEFAULT_PAYMENT_TERM_DAYS
                payable = create_payable_for_order(
                    db,
                    order=order,
                    total_amount=totals.total,
                    payment_term_days=term_days,
                    issued_at=now,
                    invoice_number=dto.invoice_number,
                )

            db.flush()
    except Exception:
        logger.warning("Goods receipt for purchase order %s rolled back", order_id)
        raise

    logger.info(
        "Goods received for %s: %d batch(es), status %s%s",
        order.order_number,
        len(result_batches),
        order.status.value,
        ", payable created" if payable_created else "",
    )
    return ReceiptResult(
        order=order,
        payable=payable,
        payable_created=payable_created,
        batches=result_batches,
        movements=result_movements,
    )
