from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.services.dashboard import get_dashboard_stats

router = APIRouter(prefix="/dashboard")


@router.get("/stats")
def stats(db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return get_dashboard_stats(db, tenant_id)
