from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.app.schemas.master_data import WarehouseCreate, WarehouseRead
from stockledger.services import master_data

router = APIRouter(prefix="/warehouses")


@router.get("")
def list_warehouses(db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return [WarehouseRead.model_validate(w).model_dump() for w in master_data.list_warehouses(db, tenant_id)]


@router.post("", status_code=201)
def create_warehouse(payload: WarehouseCreate, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return WarehouseRead.model_validate(master_data.create_warehouse(db, tenant_id, payload)).model_dump()
