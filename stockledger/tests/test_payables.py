from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from stockledger.app.db.models.models_v1 import AccountPayable, PaymentRecord
from stockledger.app.db.models.core_types import PayableStatus
from stockledger.app.schemas.payables import PayableQuery, PaymentCreate
from stockledger.services.errors import AlreadyPaid, ExceedsBalance, InvalidArgument, NotFound
from stockledger.services.payables import (
    get_payable,
    get_payables_summary,
    list_payables,
    register_payment,
    update_payable_statuses,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_payable(db_session, tenant, supplier):
    def _make(total="1150.00", due_in_days=30, status=PayableStatus.current, tenant_id=None):
        total = Decimal(total)
        p = AccountPayable(
            tenant_id=tenant_id or tenant.id,
            supplier_id=supplier.id,
            total_amount=total,
            paid_amount=Decimal("0"),
            balance_amount=total,
            currency="USD",
            status=status,
            issue_date=NOW,
            due_date=NOW + timedelta(days=due_in_days),
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


def _pay(amount, method="TRANSFER"):
    return PaymentCreate(amount=Decimal(amount), payment_method=method)


def test_exact_payment_settles_payable(db_session, tenant, make_payable):
    payable = make_payable()

    result = register_payment(db_session, tenant.id, payable.id, _pay("1150.00"))

    assert result.payable.status == PayableStatus.paid
    assert result.payable.balance_amount == 0
    assert result.payable.paid_amount == Decimal("1150.00")
    assert result.payable.paid_at is not None
    assert result.payment.currency == "USD"


def test_partial_payments_keep_paid_plus_balance_equal_total(db_session, tenant, make_payable):
    payable = make_payable()

    register_payment(db_session, tenant.id, payable.id, _pay("150.00"))
    result = register_payment(db_session, tenant.id, payable.id, _pay("400.50"))

    p = result.payable
    assert p.status == PayableStatus.current
    assert p.paid_amount == Decimal("550.50")
    assert p.balance_amount == Decimal("599.50")
    assert p.paid_amount + p.balance_amount == p.total_amount
    assert len(p.payments) == 2


def test_payment_above_balance_is_rejected_and_nothing_changes(db_session, tenant, make_payable):
    payable = make_payable(total="100.00")

    with pytest.raises(ExceedsBalance) as exc:
        register_payment(db_session, tenant.id, payable.id, _pay("100.01"))

    assert exc.value.balance == Decimal("100.00")
    reloaded = get_payable(db_session, tenant.id, payable.id)
    assert reloaded.balance_amount == Decimal("100.00")
    assert reloaded.paid_amount == 0
    assert db_session.execute(select(func.count(PaymentRecord.id))).scalar_one() == 0


def test_payment_of_a_fraction_of_a_cent_is_rejected(db_session, tenant, make_payable):
    """
    GIVEN a payable of 10.00
    WHEN 0.005 is paid (the amount column keeps 2 decimals)
    THEN the payment is refused instead of being recorded as 0.01
    """
    payable = make_payable(total="10.00")

    with pytest.raises(ValidationError):
        _pay("0.005")

    unchecked = PaymentCreate.model_construct(amount=Decimal("0.005"), payment_method="CASH")
    with pytest.raises(InvalidArgument):
        register_payment(db_session, tenant.id, payable.id, unchecked)

    reloaded = get_payable(db_session, tenant.id, payable.id)
    assert reloaded.paid_amount == 0
    assert reloaded.balance_amount == Decimal("10.00")
    assert db_session.execute(select(func.count(PaymentRecord.id))).scalar_one() == 0

def test_paid_payable_rejects_further_payments(db_session, tenant, make_payable):
    payable = make_payable(total="10.00")
    register_payment(db_session, tenant.id, payable.id, _pay("10.00"))

    with pytest.raises(AlreadyPaid):
        register_payment(db_session, tenant.id, payable.id, _pay("1.00"))


def test_payment_on_foreign_payable_is_not_found(db_session, other_tenant, make_payable):
    payable = make_payable()

    with pytest.raises(NotFound):
        register_payment(db_session, other_tenant.id, payable.id, _pay("1.00"))


def test_status_sweep_marks_overdue_then_due_soon(db_session, tenant, make_payable):
    """
    GIVEN payables due yesterday, in 3 days and in 30 days, plus a paid one already past due
    WHEN the sweep runs
    THEN yesterday's is OVERDUE, the 3-day one DUE_SOON, the rest untouched
    """
    overdue = make_payable(due_in_days=-1)
    soon = make_payable(due_in_days=3)
    later = make_payable(due_in_days=30)
    paid = make_payable(due_in_days=-10, status=PayableStatus.paid)

    result = update_payable_statuses(db_session, tenant.id, now=NOW)

    assert (result.overdue_updated, result.due_soon_updated) == (1, 1)
    db_session.expire_all()
    assert get_payable(db_session, tenant.id, overdue.id).status == PayableStatus.overdue
    assert get_payable(db_session, tenant.id, soon.id).status == PayableStatus.due_soon
    assert get_payable(db_session, tenant.id, later.id).status == PayableStatus.current
    assert get_payable(db_session, tenant.id, paid.id).status == PayableStatus.paid


def test_status_sweep_is_idempotent(db_session, tenant, make_payable):
    make_payable(due_in_days=-1)
    make_payable(due_in_days=3)

    update_payable_statuses(db_session, tenant.id, now=NOW)
    again = update_payable_statuses(db_session, tenant.id, now=NOW)

    assert (again.overdue_updated, again.due_soon_updated) == (0, 0)


def test_due_soon_payable_becomes_overdue_later(db_session, tenant, make_payable):
    payable = make_payable(due_in_days=3)
    update_payable_statuses(db_session, tenant.id, now=NOW)

    result = update_payable_statuses(db_session, tenant.id, now=NOW + timedelta(days=4))

    assert result.overdue_updated == 1
    db_session.expire_all()
    assert get_payable(db_session, tenant.id, payable.id).status == PayableStatus.overdue


def test_status_sweep_is_tenant_scoped(db_session, tenant, other_tenant, make_payable):
    foreign = make_payable(due_in_days=-1, tenant_id=other_tenant.id)

    update_payable_statuses(db_session, tenant.id, now=NOW)

    db_session.expire_all()
    assert get_payable(db_session, other_tenant.id, foreign.id).status == PayableStatus.current


def test_summary_covers_every_status(db_session, tenant, make_payable):
    make_payable(total="100.00")
    make_payable(total="50.00")
    make_payable(total="20.00", status=PayableStatus.overdue)

    summary = get_payables_summary(db_session, tenant.id)

    assert set(summary) == set(PayableStatus)
    assert summary[PayableStatus.current] == {"count": 2, "total": Decimal("150.00")}
    assert summary[PayableStatus.overdue]["count"] == 1
    assert summary[PayableStatus.paid] == {"count": 0, "total": Decimal("0")}


def test_list_filters_by_status_and_orders_by_due_date(db_session, tenant, make_payable):
    late = make_payable(due_in_days=40)
    early = make_payable(due_in_days=5)
    make_payable(status=PayableStatus.overdue, due_in_days=-2)

    page = list_payables(db_session, tenant.id, PayableQuery(status=PayableStatus.current))

    assert page.total == 2
    assert [p.id for p in page.items] == [early.id, late.id]
