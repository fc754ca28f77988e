from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import PayableStatus


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: str = Field(min_length=1, max_length=50)
    reference: str | None = Field(default=None, max_length=255)
    paid_at: datetime | None = None
    notes: str | None = None


class PayableQuery(BaseModel):
    status: PayableStatus | None = None
    supplier_id: int | None = None
    due_date_from: datetime | None = None
    due_date_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class PaymentRead(BaseModel):
    id: int
    amount: Decimal
    currency: str
    payment_method: str
    reference: str | None
    paid_at: datetime

    class Config:
        from_attributes = True


class PayableRead(BaseModel):
    id: int
    supplier_id: int
    purchase_order_id: int | None
    invoice_number: str | None
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    currency: str
    status: PayableStatus
    issue_date: datetime
    due_date: datetime
    paid_at: datetime | None

    class Config:
        from_attributes = True
