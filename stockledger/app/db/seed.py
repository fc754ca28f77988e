from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.app.db.session import SessionLocal
from stockledger.app.db.models.models_v1 import Tenant, User, Warehouse
from stockledger.app.db.models.core_types import Role

logger = logging.getLogger(__name__)


def run_seed(db: Session | None = None) -> Tenant:
    """Demo tenant + admin user + main warehouse. Safe to run repeatedly."""
    owns_session = db is None
    db = db or SessionLocal()
    try:
        # 1) Tenant "Demo"
        tenant = db.scalar(select(Tenant).where(Tenant.name == "Demo"))
        if not tenant:
            tenant = Tenant(name="Demo", active=True)
            db.add(tenant)
            db.flush()

        # 2) Admin user (identity only, credentials live with the auth service)
        user = db.scalar(select(User).where(User.tenant_id == tenant.id, User.name == "ADMIN"))
        if not user:
            db.add(User(tenant_id=tenant.id, name="ADMIN", role=Role.admin, active=True))

        # 3) Main warehouse
        warehouse = db.scalar(
            select(Warehouse).where(Warehouse.tenant_id == tenant.id, Warehouse.name == "Main")
        )
        if not warehouse:
            db.add(Warehouse(tenant_id=tenant.id, name="Main", active=True))

        db.commit()
        logger.info("Seed OK: tenant=Demo, user=ADMIN, warehouse=Main")
        return tenant
    finally:
        if owns_session:
            db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_seed()
