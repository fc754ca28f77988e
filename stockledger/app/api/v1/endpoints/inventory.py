from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id, get_user_id
from stockledger.app.db.models.core_types import MovementType
from stockledger.app.schemas.inventory import (
    BatchRead,
    InboundCreate,
    MovementQuery,
    MovementRead,
    OutboundCreate,
    TransferCreate,
)
from stockledger.services import inventory

router = APIRouter(prefix="/inventory")


def _movement(m) -> dict:
    return MovementRead.model_validate(m).model_dump()


@router.post("/inbound", status_code=201)
def register_inbound(
    payload: InboundCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    user_id: int = Depends(get_user_id),
):
    result = inventory.register_inbound(db, tenant_id, user_id, payload)
    return {
        "batch": BatchRead.model_validate(result.batch).model_dump(),
        "movement": _movement(result.movement),
    }


@router.post("/outbound", status_code=201)
def register_outbound(
    payload: OutboundCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    user_id: int = Depends(get_user_id),
):
    result = inventory.register_outbound(db, tenant_id, user_id, payload)
    return {
        "total_quantity": result.total_quantity,
        "affected_batches": result.affected_batches,
        "movements": [
            {**_movement(m), "batch_number": m.batch.batch_number}
            for m in result.movements
        ],
    }


@router.post("/transfer", status_code=201)
def register_transfer(
    payload: TransferCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    user_id: int = Depends(get_user_id),
):
    result = inventory.register_transfer(db, tenant_id, user_id, payload)
    return {
        "outbound": [_movement(m) for m in result.outbound],
        "inbound": [_movement(m) for m in result.inbound],
        "batches": [BatchRead.model_validate(b).model_dump() for b in result.batches],
    }


@router.get("/stock/{product_id}")
def get_product_stock(
    product_id: int,
    warehouse_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    stock = inventory.get_product_stock(db, tenant_id, product_id, warehouse_id)
    return {
        "product_id": stock.product_id,
        "warehouse_id": stock.warehouse_id,
        "total_stock": stock.total_stock,
        "batches": [
            {
                "batch_number": b.batch_number,
                "quantity": b.quantity_current,
                "unit_cost": b.unit_cost,
                "expires_at": b.expires_at,
            }
            for b in stock.batches
        ],
    }


@router.get("/expiring")
def get_expiring_batches(
    days: int = Query(default=30, ge=0, le=365),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    rows = inventory.get_expiring_batches(db, tenant_id, days_ahead=days)
    return {
        "count": len(rows),
        "batches": [
            {
                **BatchRead.model_validate(r.batch).model_dump(),
                "days_until_expiry": r.days_until_expiry,
                "status": r.status,
            }
            for r in rows
        ],
    }


@router.get("/movements")
def list_movements(
    type: MovementType | None = None,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    query = MovementQuery(
        type=type,
        product_id=product_id,
        warehouse_id=warehouse_id,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    result = inventory.list_movements(db, tenant_id, query)
    return {"data": [_movement(m) for m in result.items], "meta": result.meta()}
