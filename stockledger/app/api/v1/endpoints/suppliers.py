from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.app.schemas.master_data import SupplierCreate, SupplierRead
from stockledger.services import master_data

router = APIRouter(prefix="/suppliers")


@router.get("")
def list_suppliers(
    search: str | None = None,
    include_inactive: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    result = master_data.list_suppliers(
        db, tenant_id, search=search, include_inactive=include_inactive, page=page, limit=limit
    )
    return {
        "data": [SupplierRead.model_validate(s).model_dump() for s in result.items],
        "meta": result.meta(),
    }


@router.post("", status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return SupplierRead.model_validate(master_data.create_supplier(db, tenant_id, payload)).model_dump()
