from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.services import families

router = APIRouter(prefix="/families")


@router.get("")
def list_families(
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    result = families.list_families(db, tenant_id, search=search, page=page, limit=limit)
    return {
        "data": [
            {
                "id": f.id,
                "name": f.name,
                "base_unit": f.base_unit,
                "target_stock_base": f.target_stock_base,
            }
            for f in result.items
        ],
        "meta": result.meta(),
    }


@router.get("/deficits")
def families_with_deficit(db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return [
        {
            "family_id": s.family_id,
            "family_name": s.family_name,
            "deficit": s.deficit,
            "percentage_of_target": s.percentage_of_target,
        }
        for s in families.get_families_with_deficit(db, tenant_id)
    ]


@router.get("/{family_id}/stock")
def family_stock(family_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return asdict(families.get_family_stock(db, tenant_id, family_id))
