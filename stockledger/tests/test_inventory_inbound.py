import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from stockledger.app.db.models.models_v1 import Batch, InventoryMovement, Supplier
from stockledger.app.db.models.core_types import ExpiryStatus, MovementType
from stockledger.app.schemas.inventory import InboundCreate, MovementQuery
from stockledger.services.errors import DuplicateBatch, InvalidArgument, NotFound
from stockledger.services.inventory import (
    create_batch,
    generate_batch_number,
    get_expiring_batches,
    list_movements,
    register_inbound,
)


def test_generated_batch_number_format():
    assert re.fullmatch(r"B-\d{13}-[0-9A-Z]{4}", generate_batch_number())


def test_inbound_creates_batch_and_movement(db_session, tenant, user, warehouse, product, supplier):
    dto = InboundCreate(
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=Decimal("12"),
        unit_cost=Decimal("2.5"),
        supplier_id=supplier.id,
    )

    result = register_inbound(db_session, tenant.id, user.id, dto)

    batch, movement = result.batch, result.movement
    assert batch.batch_number.startswith("B-")
    assert batch.quantity_initial == batch.quantity_current == Decimal("12")
    assert batch.is_exhausted is False
    assert batch.supplier_id == supplier.id
    assert movement.type == MovementType.inbound
    assert movement.batch_id == batch.id
    assert movement.quantity == Decimal("12")
    assert movement.total_cost == Decimal("30")
    assert (movement.stock_before, movement.stock_after) == (Decimal("0"), Decimal("12"))


def test_explicit_batch_number_is_kept(db_session, tenant, product, stock_in):
    batch = stock_in(product, 1, batch_number="LOT-42").batch
    assert batch.batch_number == "LOT-42"


def test_duplicate_batch_number_fails_and_writes_nothing(db_session, tenant, product, stock_in):
    stock_in(product, 1, batch_number="LOT-42")

    with pytest.raises(DuplicateBatch):
        stock_in(product, 5, batch_number="LOT-42")

    assert db_session.execute(select(func.count(Batch.id))).scalar_one() == 1
    assert db_session.execute(select(func.count(InventoryMovement.id))).scalar_one() == 1


def test_batch_numbers_are_unique_per_tenant_only(
    db_session, tenant, other_tenant, user, product, stock_in, make_warehouse, make_product
):
    stock_in(product, 1, batch_number="LOT-1")

    foreign_product = make_product(other_tenant, "SKU-1")
    foreign_warehouse = make_warehouse(other_tenant, "MAIN")
    dto = InboundCreate(
        product_id=foreign_product.id,
        warehouse_id=foreign_warehouse.id,
        quantity=Decimal("1"),
        unit_cost=Decimal("1"),
        batch_number="LOT-1",
    )

    result = register_inbound(db_session, other_tenant.id, user.id, dto)
    assert result.batch.tenant_id == other_tenant.id



def test_other_integrity_errors_are_not_reported_as_duplicates(db_session, tenant, user, product):
    with pytest.raises(IntegrityError):
        create_batch(
            db_session,
            tenant_id=tenant.id,
            user_id=user.id,
            product_id=product.id,
            warehouse_id=987654,
            quantity=Decimal("1"),
            unit_cost=Decimal("1"),
            batch_number="LOT-FK",
        )
    db_session.rollback()


def test_batch_cost_finer_than_the_column_is_rejected(db_session, tenant, user, warehouse, product):
    with pytest.raises(InvalidArgument):
        create_batch(
            db_session,
            tenant_id=tenant.id,
            user_id=user.id,
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=Decimal("1"),
            unit_cost=Decimal("0.00005"),
        )
    db_session.rollback()

    assert db_session.execute(select(func.count(Batch.id))).scalar_one() == 0


@pytest.mark.parametrize("field", ["product", "warehouse", "supplier"])
def test_inbound_rejects_entities_of_another_tenant(
    db_session, tenant, other_tenant, user, warehouse, product, field, make_product, make_warehouse
):
    values = {"product_id": product.id, "warehouse_id": warehouse.id, "supplier_id": None}
    if field == "product":
        values["product_id"] = make_product(other_tenant, "X").id
    elif field == "warehouse":
        values["warehouse_id"] = make_warehouse(other_tenant, "X").id
    else:
        s = Supplier(tenant_id=other_tenant.id, name="X", active=True)
        db_session.add(s)
        db_session.commit()
        values["supplier_id"] = s.id

    dto = InboundCreate(quantity=Decimal("1"), unit_cost=Decimal("1"), **values)
    with pytest.raises(NotFound):
        register_inbound(db_session, tenant.id, user.id, dto)

    assert db_session.execute(select(func.count(Batch.id))).scalar_one() == 0


def test_expiring_batches_are_classified(db_session, tenant, product, stock_in):
    now = datetime(2026, 6, 1, tzinfo=timezone.utc)
    stock_in(product, 1, batch_number="EXPIRED", expires_at=now - timedelta(days=1))
    stock_in(product, 1, batch_number="SOON", expires_at=now + timedelta(days=5))
    stock_in(product, 1, batch_number="LATER", expires_at=now + timedelta(days=20))
    stock_in(product, 1, batch_number="FAR", expires_at=now + timedelta(days=90))
    stock_in(product, 1, batch_number="NEVER")

    rows = get_expiring_batches(db_session, tenant.id, days_ahead=30, now=now)

    assert [r.batch.batch_number for r in rows] == ["EXPIRED", "SOON", "LATER"]
    assert [r.status for r in rows] == [ExpiryStatus.critical, ExpiryStatus.warning, ExpiryStatus.upcoming]
    assert [r.days_until_expiry for r in rows] == [-1, 5, 20]


def test_movement_history_is_filtered_and_paginated(db_session, tenant, product, stock_in, make_product):
    other = make_product(tenant, "SKU-2")
    stock_in(product, 1, notes="first delivery")
    stock_in(product, 2)
    stock_in(other, 3)

    page = list_movements(db_session, tenant.id, MovementQuery(product_id=product.id, limit=1))
    assert page.total == 2
    assert page.total_pages == 2
    assert len(page.items) == 1

    found = list_movements(db_session, tenant.id, MovementQuery(search="DELIVERY"))
    assert [m.quantity for m in found.items] == [Decimal("1")]


def test_movement_history_is_tenant_scoped(db_session, tenant, other_tenant, product, stock_in):
    stock_in(product, 1)

    assert list_movements(db_session, other_tenant.id, MovementQuery()).total == 0
