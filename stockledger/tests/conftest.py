from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.app.db.models.models_v1 import (
    Base,
    Product,
    ProductFamily,
    Supplier,
    Tenant,
    User,
    Warehouse,
)
from stockledger.app.db.models.core_types import BaseUnit, Role
from stockledger.app.schemas.inventory import InboundCreate
from stockledger.services.inventory import register_inbound


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so the schema survives
    across sessions (and across the TestClient worker thread).
    """
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- master data ----------
@pytest.fixture
def tenant(db_session) -> Tenant:
    t = Tenant(name="TEST-TENANT", active=True)
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def other_tenant(db_session) -> Tenant:
    t = Tenant(name="OTHER-TENANT", active=True)
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def user(db_session, tenant) -> User:
    u = User(tenant_id=tenant.id, name="TEST-USER", role=Role.operator, active=True)
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def make_warehouse(db_session):
    def _make(tenant, name="MAIN"):
        w = Warehouse(tenant_id=tenant.id, name=name, active=True)
        db_session.add(w)
        db_session.commit()
        return w

    return _make


@pytest.fixture
def warehouse(make_warehouse, tenant) -> Warehouse:
    return make_warehouse(tenant)


@pytest.fixture
def supplier(db_session, tenant) -> Supplier:
    s = Supplier(tenant_id=tenant.id, name="TEST-SUPPLIER", payment_term_days=None, active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def make_product(db_session):
    def _make(tenant, sku, family=None, conversion_factor="1", stock_min="0", active=True):
        p = Product(
            tenant_id=tenant.id,
            sku=sku,
            name=f"Product {sku}",
            uom="unit",
            family_id=family.id if family else None,
            conversion_factor=Decimal(conversion_factor),
            stock_min=Decimal(stock_min),
            active=active,
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


@pytest.fixture
def product(make_product, tenant) -> Product:
    return make_product(tenant, "SKU-1")


@pytest.fixture
def make_family(db_session):
    def _make(tenant, name, target, base_unit=BaseUnit.gram):
        f = ProductFamily(tenant_id=tenant.id, name=name, base_unit=base_unit, target_stock_base=Decimal(target))
        db_session.add(f)
        db_session.commit()
        return f

    return _make


@pytest.fixture
def stock_in(db_session, tenant, user, warehouse):
    """Register an inbound batch; defaults to the tenant's main warehouse."""

    def _stock_in(product, quantity, unit_cost="10", warehouse_id=None, **kwargs):
        dto = InboundCreate(
            product_id=product.id,
            warehouse_id=warehouse_id or warehouse.id,
            quantity=Decimal(str(quantity)),
            unit_cost=Decimal(str(unit_cost)),
            **kwargs,
        )
        return register_inbound(db_session, tenant.id, user.id, dto)

    return _stock_in
