from datetime import datetime, timezone
from decimal import Decimal

import logging

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from stockledger.app.db.models.models_v1 import Batch, InventoryMovement
from stockledger.app.db.models.core_types import MovementReason, MovementType
from stockledger.app.schemas.inventory import OutboundCreate
from stockledger.services.errors import InsufficientStock, InvalidArgument, NotFound
from stockledger.services.inventory import consume_fifo, get_product_stock, register_outbound


def _outbound(product, warehouse, quantity, reason=MovementReason.sale, **kwargs):
    return OutboundCreate(
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=Decimal(str(quantity)),
        reason=reason,
        **kwargs,
    )


def _on_hand(db_session, product, warehouse) -> Decimal:
    total = db_session.execute(
        select(func.coalesce(func.sum(Batch.quantity_current), 0)).where(
            Batch.product_id == product.id,
            Batch.warehouse_id == warehouse.id,
        )
    ).scalar_one()
    return Decimal(str(total))


def test_consumes_oldest_batch_first(db_session, tenant, user, warehouse, product, stock_in):
    """
    GIVEN B1 (first, 5 units) and B2 (second, 10 units)
    WHEN 7 units go out
    THEN B1 is drained (5) and exhausted, B2 gives 2 and keeps 8
    """
    b1 = stock_in(product, 5, unit_cost="2").batch
    b2 = stock_in(product, 10, unit_cost="3").batch

    result = register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 7))

    assert result.total_quantity == Decimal("7")
    assert result.affected_batches == 2
    assert [m.batch_id for m in result.movements] == [b1.id, b2.id]
    assert [m.quantity for m in result.movements] == [Decimal("5"), Decimal("2")]

    db_session.refresh(b1)
    db_session.refresh(b2)
    assert b1.quantity_current == 0
    assert b1.is_exhausted is True
    assert b2.quantity_current == Decimal("8")
    assert b2.is_exhausted is False


def test_outbound_movements_carry_stock_before_after_and_cost(db_session, tenant, user, warehouse, product, stock_in):
    stock_in(product, 5, unit_cost="2")
    stock_in(product, 10, unit_cost="3")

    result = register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 7, reference_id="INV-1"))
    first, second = result.movements

    assert first.type == MovementType.outbound
    assert first.reason == MovementReason.sale
    assert (first.stock_before, first.stock_after) == (Decimal("5"), Decimal("0"))
    assert (second.stock_before, second.stock_after) == (Decimal("10"), Decimal("8"))
    assert first.total_cost == Decimal("10")
    assert second.total_cost == Decimal("6")
    assert first.reference_id == "INV-1"
    assert first.performed_by == user.id


def test_fifo_ignores_expiry_dates(db_session, tenant, user, warehouse, product, stock_in):
    late_expiry = stock_in(product, 4, expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc)).batch
    stock_in(product, 4, expires_at=datetime(2027, 1, 1, tzinfo=timezone.utc))

    result = register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 3))

    assert [m.batch_id for m in result.movements] == [late_expiry.id]


def test_same_creation_time_falls_back_to_batch_id(db_session, tenant, user, warehouse, product, stock_in):
    first = stock_in(product, 3).batch
    second = stock_in(product, 3).batch
    same_instant = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    first.created_at = same_instant
    second.created_at = same_instant
    db_session.commit()

    result = register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 4))

    assert [m.batch_id for m in result.movements] == [first.id, second.id]


def test_insufficient_stock_leaves_batches_untouched(db_session, tenant, user, warehouse, product, stock_in):
    b1 = stock_in(product, 5).batch
    b2 = stock_in(product, 10).batch
    movements_before = db_session.execute(select(func.count(InventoryMovement.id))).scalar_one()

    with pytest.raises(InsufficientStock) as exc:
        register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 16))

    assert exc.value.requested == Decimal("16")
    assert exc.value.available == Decimal("15")
    assert exc.value.short == Decimal("1")

    db_session.refresh(b1)
    db_session.refresh(b2)
    assert b1.quantity_current == Decimal("5")
    assert b2.quantity_current == Decimal("10")
    assert db_session.execute(select(func.count(InventoryMovement.id))).scalar_one() == movements_before


def test_exhausted_batches_are_skipped(db_session, tenant, user, warehouse, product, stock_in):
    b1 = stock_in(product, 2).batch
    b2 = stock_in(product, 6).batch

    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 2))
    result = register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 1))

    assert [m.batch_id for m in result.movements] == [b2.id]
    db_session.refresh(b1)
    assert b1.is_exhausted is True


def test_conservation_after_inbound_and_outbound_sequence(db_session, tenant, user, warehouse, product, stock_in):
    inbound = [Decimal("5"), Decimal("12.5"), Decimal("3")]
    outbound = [Decimal("4"), Decimal("6.5"), Decimal("7"), Decimal("2")]

    stock_in(product, inbound[0])
    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, outbound[0]))
    stock_in(product, inbound[1])
    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, outbound[1]))
    stock_in(product, inbound[2])
    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, outbound[2], reason=MovementReason.consume))
    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, outbound[3], reason=MovementReason.adjustment))

    assert _on_hand(db_session, product, warehouse) == sum(inbound) - sum(outbound)
    for batch in db_session.execute(select(Batch)).scalars():
        assert 0 <= batch.quantity_current <= batch.quantity_initial
        assert batch.is_exhausted == (batch.quantity_current == 0)


def test_other_warehouse_stock_is_not_consumed(db_session, tenant, user, warehouse, product, stock_in, make_warehouse):
    annex = make_warehouse(tenant, "ANNEX")
    stock_in(product, 10, warehouse_id=annex.id)
    stock_in(product, 2)

    with pytest.raises(InsufficientStock):
        register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 5))


def test_non_positive_quantity_is_rejected(db_session, tenant, user, warehouse, product, stock_in):
    stock_in(product, 5)

    with pytest.raises(InvalidArgument):
        consume_fifo(
            db_session,
            tenant_id=tenant.id,
            user_id=user.id,
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=0,
            reason=MovementReason.sale,
        )


def test_outbound_on_foreign_tenant_product_is_not_found(
    db_session, tenant, other_tenant, user, warehouse, make_product
):
    foreign = make_product(other_tenant, "FOREIGN-1")

    with pytest.raises(NotFound):
        register_outbound(db_session, tenant.id, user.id, _outbound(foreign, warehouse, 1))


def test_product_stock_lists_open_batches_in_fifo_order(db_session, tenant, user, warehouse, product, stock_in):
    b1 = stock_in(product, 3).batch
    b2 = stock_in(product, 4).batch
    register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 3))

    stock = get_product_stock(db_session, tenant.id, product.id, warehouse.id)

    assert stock.total_stock == Decimal("4")
    assert [b.id for b in stock.batches] == [b2.id]
    assert b1.id not in [b.id for b in stock.batches]


def test_product_stock_in_foreign_warehouse_is_not_found(
    db_session, tenant, other_tenant, product, stock_in, make_warehouse
):
    stock_in(product, 3)
    foreign = make_warehouse(other_tenant, name="FOREIGN")

    with pytest.raises(NotFound):
        get_product_stock(db_session, tenant.id, product.id, foreign.id)


def test_quantity_finer_than_a_thousandth_is_rejected(db_session, tenant, user, warehouse, product, stock_in):
    """
    GIVEN a batch of 5 units
    WHEN 0.0004 units are consumed (below the 3 decimals the ledger stores)
    THEN nothing is debited and no zero-quantity OUT movement is written
    """
    batch = stock_in(product, 5).batch

    with pytest.raises(InvalidArgument):
        consume_fifo(
            db_session,
            tenant_id=tenant.id,
            user_id=user.id,
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=Decimal("0.0004"),
            reason=MovementReason.sale,
        )
    db_session.rollback()
    db_session.expire_all()

    assert db_session.get(Batch, batch.id).quantity_current == Decimal("5")
    out_count = db_session.execute(
        select(func.count(InventoryMovement.id)).where(InventoryMovement.type == MovementType.outbound)
    ).scalar_one()
    assert out_count == 0


def test_outbound_request_rejects_excess_decimals(product, warehouse):
    with pytest.raises(ValidationError):
        _outbound(product, warehouse, "0.0004")

    assert _outbound(product, warehouse, "1.125").quantity == Decimal("1.125")


def test_failed_outbound_logs_rollback(db_session, tenant, user, warehouse, product, stock_in, caplog):
    stock_in(product, 1)

    with caplog.at_level(logging.WARNING, logger="stockledger.services.inventory"):
        with pytest.raises(InsufficientStock):
            register_outbound(db_session, tenant.id, user.id, _outbound(product, warehouse, 2))

    assert "Outbound registration rolled back" in caplog.text
