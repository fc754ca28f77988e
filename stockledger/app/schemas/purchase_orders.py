from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import POStatus


class POCreate(BaseModel):
    supplier_id: int
    order_number: str | None = Field(default=None, min_length=1, max_length=64)
    expected_at: datetime | None = None
    payment_term_days: int | None = Field(default=None, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    notes: str | None = None


class POUpdate(BaseModel):
    expected_at: datetime | None = None
    payment_term_days: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    notes: str | None = None


class POItemCreate(BaseModel):
    product_id: int
    quantity_ordered: Decimal = Field(gt=0, decimal_places=3)
    unit_price: Decimal = Field(ge=0, decimal_places=4)
    discount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1, decimal_places=4)
    notes: str | None = None


class POQuery(BaseModel):
    status: POStatus | None = None
    supplier_id: int | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class ReceiveItem(BaseModel):
    product_id: int
    quantity_received: Decimal = Field(gt=0, decimal_places=3)
    # actual landed cost, may differ from the ordered unit price
    unit_cost: Decimal = Field(ge=0, decimal_places=4)
    batch_number: str | None = Field(default=None, min_length=1, max_length=64)
    expires_at: datetime | None = None


class ReceiveGoods(BaseModel):
    warehouse_id: int
    items: list[ReceiveItem] = Field(min_length=1)
    invoice_number: str | None = Field(default=None, max_length=64)
    notes: str | None = None
