"""
Accounts payable lifecycle.

CURRENT -> DUE_SOON -> OVERDUE are time driven (see update_payable_statuses),
PAID is reached only through payments and is terminal.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from stockledger.app.db.models.models_v1 import AccountPayable, PaymentRecord, PurchaseOrder, utcnow
from stockledger.app.db.models.core_types import PayableStatus, can_transition
from stockledger.app.db.session import transaction
from stockledger.app.schemas.payables import PayableQuery, PaymentCreate
from stockledger.services.errors import AlreadyPaid, ExceedsBalance, InvalidArgument, InvalidState, NotFound
from stockledger.services.inventory import MONEY_PLACES, to_scaled
from stockledger.services.pagination import Page, paginate

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_TERM_DAYS = int(os.getenv("DEFAULT_PAYMENT_TERM_DAYS", "30"))
DUE_SOON_DAYS = int(os.getenv("DUE_SOON_DAYS", "7"))


@dataclass
class PaymentResult:
    payment: PaymentRecord
    payable: AccountPayable


@dataclass
class StatusUpdateResult:
    overdue_updated: int
    due_soon_updated: int


def get_payable(db: Session, tenant_id: int, payable_id: int, *, lock: bool = False) -> AccountPayable:
    stmt = select(AccountPayable).where(
        AccountPayable.id == payable_id,
        AccountPayable.tenant_id == tenant_id,
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    payable = db.execute(stmt).scalar_one_or_none()
    if not payable:
        raise NotFound(f"Account payable {payable_id} not found")
    return payable


def find_payable_for_order(db: Session, tenant_id: int, order_id: int) -> AccountPayable | None:
    return db.execute(
        select(AccountPayable).where(
            AccountPayable.tenant_id == tenant_id,
            AccountPayable.purchase_order_id == order_id,
        )
    ).scalar_one_or_none()


def create_payable_for_order(
    db: Session,
    *,
    order: PurchaseOrder,
    total_amount: Decimal,
    payment_term_days: int,
    issued_at: datetime,
    invoice_number: str | None = None,
) -> AccountPayable:
    """Caller owns the transaction (the goods receipt)."""
    payable = AccountPayable(
        tenant_id=order.tenant_id,
        supplier_id=order.supplier_id,
        purchase_order_id=order.id,
        invoice_number=invoice_number,
        total_amount=total_amount,
        paid_amount=Decimal("0"),
        balance_amount=total_amount,
        currency=order.currency,
        status=PayableStatus.current,
        issue_date=issued_at,
        due_date=issued_at + timedelta(days=payment_term_days),
        notes=f"Generated from purchase order {order.order_number}",
    )
    db.add(payable)
    db.flush()
    return payable


def register_payment(db: Session, tenant_id: int, payable_id: int, dto: PaymentCreate) -> PaymentResult:
    """
    Apply a partial or full payment.

    paid + balance == total holds after every payment; the payable row is
    locked for the duration so concurrent payments cannot both pass the
    balance check.
    """
    logger.info("Registering payment of %s for payable %s", dto.amount, payable_id)

    with transaction(db):
        payable = get_payable(db, tenant_id, payable_id, lock=True)

        if payable.status == PayableStatus.paid:
            raise AlreadyPaid(f"Account payable {payable_id} is already paid")

        amount = to_scaled(dto.amount, MONEY_PLACES, "amount")
        if amount <= 0:
            raise InvalidArgument("amount must be greater than 0")
        if amount > payable.balance_amount:
            raise ExceedsBalance(amount=amount, balance=payable.balance_amount)

        now = utcnow()
        payment = PaymentRecord(
            payable_id=payable.id,
            amount=amount,
            currency=payable.currency,
            payment_method=dto.payment_method,
            reference=dto.reference,
            paid_at=dto.paid_at or now,
            notes=dto.notes,
        )
        db.add(payment)

        payable.paid_amount = payable.paid_amount + amount
        payable.balance_amount = payable.balance_amount - amount
        if payable.balance_amount <= 0:
            if not can_transition(payable.status, PayableStatus.paid):
                raise InvalidState(f"Account payable {payable_id} cannot move to PAID from {payable.status.value}")
            payable.balance_amount = Decimal("0")
            payable.status = PayableStatus.paid
            payable.paid_at = now

        db.flush()

    logger.info("Payment registered for payable %s, new balance %s", payable_id, payable.balance_amount)
    return PaymentResult(payment=payment, payable=payable)


def update_payable_statuses(db: Session, tenant_id: int, now: datetime | None = None) -> StatusUpdateResult:
    """
    Time-driven status sweep, meant for a daily cron or a manual trigger.

    OVERDUE pass first (due date passed, not PAID / OVERDUE), then DUE_SOON
    (still CURRENT, due within DUE_SOON_DAYS). Running it twice changes
    nothing the second time.
    """
    now = now or utcnow()
    horizon = now + timedelta(days=DUE_SOON_DAYS)

    with transaction(db):
        overdue = db.execute(
            update(AccountPayable)
            .where(AccountPayable.tenant_id == tenant_id)
            .where(AccountPayable.status.not_in([PayableStatus.paid, PayableStatus.overdue]))
            .where(AccountPayable.due_date < now)
            .values(status=PayableStatus.overdue)
            .execution_options(synchronize_session=False)
        )
        due_soon = db.execute(
            update(AccountPayable)
            .where(AccountPayable.tenant_id == tenant_id)
            .where(AccountPayable.status == PayableStatus.current)
            .where(AccountPayable.due_date > now)
            .where(AccountPayable.due_date <= horizon)
            .values(status=PayableStatus.due_soon)
            .execution_options(synchronize_session=False)
        )

    result = StatusUpdateResult(overdue_updated=overdue.rowcount, due_soon_updated=due_soon.rowcount)
    logger.info(
        "Updated payable statuses for tenant %s: %d overdue, %d due soon",
        tenant_id,
        result.overdue_updated,
        result.due_soon_updated,
    )
    return result


# ---------- Queries ----------
def list_payables(db: Session, tenant_id: int, query: PayableQuery) -> Page[AccountPayable]:
    stmt = select(AccountPayable).where(AccountPayable.tenant_id == tenant_id)

    if query.status is not None:
        stmt = stmt.where(AccountPayable.status == query.status)
    if query.supplier_id is not None:
        stmt = stmt.where(AccountPayable.supplier_id == query.supplier_id)
    if query.due_date_from is not None:
        stmt = stmt.where(AccountPayable.due_date >= query.due_date_from)
    if query.due_date_to is not None:
        stmt = stmt.where(AccountPayable.due_date <= query.due_date_to)

    stmt = stmt.order_by(AccountPayable.due_date.asc(), AccountPayable.id.asc())
    return paginate(db, stmt, page=query.page, limit=query.limit)


def get_payables_summary(db: Session, tenant_id: int) -> dict[PayableStatus, dict]:
    """Count and outstanding balance per status; every status is present."""
    rows = db.execute(
        select(
            AccountPayable.status,
            func.count(AccountPayable.id),
            func.coalesce(func.sum(AccountPayable.balance_amount), 0),
        )
        .where(AccountPayable.tenant_id == tenant_id)
        .group_by(AccountPayable.status)
    ).all()

    summary = {status: {"count": 0, "total": Decimal("0")} for status in PayableStatus}
    for status, count, total in rows:
        summary[PayableStatus(status)] = {"count": int(count), "total": Decimal(str(total))}
    return summary
