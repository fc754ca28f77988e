from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.app.schemas.master_data import ProductCreate, ProductQuery, ProductRead
from stockledger.services import inventory, master_data

router = APIRouter(prefix="/products")


def _product(p) -> dict:
    return ProductRead.model_validate(p).model_dump()


@router.get("")
def list_products(
    search: str | None = None,
    family_id: int | None = None,
    include_inactive: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    query = ProductQuery(
        search=search,
        family_id=family_id,
        include_inactive=include_inactive,
        page=page,
        limit=limit,
    )
    result = master_data.list_products(db, tenant_id, query)
    return {"data": [_product(p) for p in result.items], "meta": result.meta()}


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _product(inventory.get_product(db, tenant_id, product_id))


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _product(master_data.create_product(db, tenant_id, payload))
