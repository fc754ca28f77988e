from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id, get_user_id
from stockledger.app.db.models.core_types import AuditStatus
from stockledger.app.schemas.audits import AuditCreate, AuditItemRead, AuditItemUpdate, AuditQuery, AuditRead
from stockledger.app.schemas.inventory import BatchRead, MovementRead
from stockledger.services import audits

router = APIRouter(prefix="/audits")


def _audit(a, with_items: bool = False) -> dict:
    data = AuditRead.model_validate(a).model_dump()
    if with_items:
        data["items"] = [
            {**AuditItemRead.model_validate(i).model_dump(), "sku": i.product.sku, "product_name": i.product.name}
            for i in a.items
        ]
    return data


@router.get("")
def list_audits(
    warehouse_id: int | None = None,
    status: AuditStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    query = AuditQuery(warehouse_id=warehouse_id, status=status, page=page, limit=limit)
    result = audits.list_audits(db, tenant_id, query)
    return {
        "data": [{**_audit(a), "item_count": len(a.items)} for a in result.items],
        "meta": result.meta(),
    }


@router.get("/{audit_id}")
def get_audit(audit_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _audit(audits.get_audit(db, tenant_id, audit_id), with_items=True)


@router.post("", status_code=201)
def create_audit(payload: AuditCreate, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _audit(audits.create_audit(db, tenant_id, payload), with_items=True)


@router.patch("/{audit_id}/items/{item_id}")
def update_item(
    audit_id: int,
    item_id: int,
    payload: AuditItemUpdate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    item = audits.update_audit_item(db, tenant_id, audit_id, item_id, payload)
    return AuditItemRead.model_validate(item).model_dump()


@router.post("/{audit_id}/close")
def close_audit(
    audit_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    user_id: int = Depends(get_user_id),
):
    result = audits.close_audit(db, tenant_id, user_id, audit_id)
    return {
        "audit": _audit(result.audit, with_items=True),
        "batches": [BatchRead.model_validate(b).model_dump() for b in result.batches],
        "movements": [MovementRead.model_validate(m).model_dump() for m in result.movements],
    }


@router.post("/{audit_id}/cancel")
def cancel_audit(audit_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _audit(audits.cancel_audit(db, tenant_id, audit_id))
