from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, get_tenant_id, get_user_id
from stockledger.app.db.models.core_types import POStatus
from stockledger.app.schemas.inventory import BatchRead
from stockledger.app.schemas.payables import PayableRead
from stockledger.app.schemas.purchase_orders import POCreate, POItemCreate, POQuery, POUpdate, ReceiveGoods
from stockledger.services import procurement

router = APIRouter(prefix="/purchase-orders")


def _order(po, with_items: bool = False) -> dict:
    data = {
        "id": po.id,
        "order_number": po.order_number,
        "supplier_id": po.supplier_id,
        "status": po.status,
        "expected_at": po.expected_at,
        "payment_term_days": po.payment_term_days,
        "currency": po.currency,
        "subtotal": po.subtotal,
        "tax_amount": po.tax_amount,
        "total": po.total,
        "created_at": po.created_at,
        "ordered_at": po.ordered_at,
        "received_at": po.received_at,
    }
    if with_items:
        data["items"] = [
            {
                "id": i.id,
                "product_id": i.product_id,
                "quantity_ordered": i.quantity_ordered,
                "quantity_received": i.quantity_received,
                "unit_price": i.unit_price,
                "discount": i.discount,
                "tax_rate": i.tax_rate,
            }
            for i in po.items
        ]
    return data


@router.get("")
def list_pos(
    status: POStatus | None = None,
    supplier_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    query = POQuery(status=status, supplier_id=supplier_id, page=page, limit=limit)
    result = procurement.list_purchase_orders(db, tenant_id, query)
    return {"data": [_order(po) for po in result.items], "meta": result.meta()}


@router.get("/{po_id}")
def get_po(po_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _order(procurement.get_purchase_order(db, tenant_id, po_id), with_items=True)


@router.post("", status_code=201)
def create_po(payload: POCreate, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    po = procurement.create_purchase_order(db, tenant_id, payload)
    return {"id": po.id, "order_number": po.order_number, "status": po.status}


@router.patch("/{po_id}")
def update_po(
    po_id: int,
    payload: POUpdate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    return _order(procurement.update_purchase_order(db, tenant_id, po_id, payload))


@router.post("/{po_id}/items", status_code=201)
def add_item(
    po_id: int,
    payload: POItemCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    item = procurement.add_item(db, tenant_id, po_id, payload)
    return {"id": item.id, "product_id": item.product_id, "quantity_ordered": item.quantity_ordered}


@router.delete("/{po_id}/items/{item_id}")
def remove_item(
    po_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    procurement.remove_item(db, tenant_id, po_id, item_id)
    return {"deleted": True}


@router.post("/{po_id}/send")
def send_po(po_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _order(procurement.send_purchase_order(db, tenant_id, po_id))


@router.post("/{po_id}/cancel")
def cancel_po(po_id: int, db: Session = Depends(get_db), tenant_id: int = Depends(get_tenant_id)):
    return _order(procurement.cancel_purchase_order(db, tenant_id, po_id))


@router.post("/{po_id}/receive", status_code=201)
def receive_goods(
    po_id: int,
    payload: ReceiveGoods,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    user_id: int = Depends(get_user_id),
):
    result = procurement.receive_goods(db, tenant_id, user_id, po_id, payload)
    return {
        "order": _order(result.order, with_items=True),
        "batches": [BatchRead.model_validate(b).model_dump() for b in result.batches],
        "movements_created": len(result.movements),
        "payable": PayableRead.model_validate(result.payable).model_dump(),
        "payable_created": result.payable_created,
    }
