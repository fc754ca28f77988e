from __future__ import annotations

from typing import Generator

from fastapi import Header

from stockledger.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Identity is resolved upstream (auth gateway); the ids arrive already validated.
def get_tenant_id(x_tenant_id: int = Header(alias="X-Tenant-ID")) -> int:
    return x_tenant_id


def get_user_id(x_user_id: int = Header(alias="X-User-ID")) -> int:
    return x_user_id
