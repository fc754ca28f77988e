from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id
from stockledger.app.db.models.core_types import PayableStatus
from stockledger.app.schemas.payables import PayableQuery, PayableRead, PaymentCreate, PaymentRead
from stockledger.services import payables

router = APIRouter(prefix="/accounts-payable")


@router.get("")
def list_payables(
    status: PayableStatus | None = None,
    supplier_id: int | None = None,
    due_date_from: datetime | None = None,
    due_date_to: datetime | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    query = PayableQuery(
        status=status,
        supplier_id=supplier_id,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
        page=page,
        limit=limit,
    )
    result = payables.list_payables(db, tenant_id, query)
    return {
        "data": [PayableRead.model_validate(p).model_dump() for p in result.items],
        "meta": result.meta(),
    }


@router.get("/summary")
def get_summary(db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    summary = payables.get_payables_summary(db, tenant_id)
    return {status.value: values for status, values in summary.items()}


# cron / manual trigger
@router.post("/update-statuses")
def update_statuses(db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    result = payables.update_payable_statuses(db, tenant_id)
    return {"overdue_updated": result.overdue_updated, "due_soon_updated": result.due_soon_updated}


@router.get("/{payable_id}")
def get_payable(payable_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    payable = payables.get_payable(db, tenant_id, payable_id)
    return {
        **PayableRead.model_validate(payable).model_dump(),
        "payments": [PaymentRead.model_validate(p).model_dump() for p in payable.payments],
    }


@router.post("/{payable_id}/payments", status_code=201)
def register_payment(
    payable_id: int,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    result = payables.register_payment(db, tenant_id, payable_id, payload)
    return {
        "payment": PaymentRead.model_validate(result.payment).model_dump(),
        "payable": PayableRead.model_validate(result.payable).model_dump(),
    }
