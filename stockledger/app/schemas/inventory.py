from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import MovementReason, MovementType


class InboundCreate(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: Decimal = Field(gt=0, decimal_places=3)
    unit_cost: Decimal = Field(ge=0, decimal_places=4)
    batch_number: str | None = Field(default=None, min_length=1, max_length=64)
    expires_at: datetime | None = None
    supplier_id: int | None = None
    notes: str | None = None


class OutboundCreate(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: Decimal = Field(gt=0, decimal_places=3)
    reason: MovementReason
    reference_id: str | None = Field(default=None, max_length=128)
    destination_type: str | None = Field(default=None, max_length=64)
    destination_ref: str | None = Field(default=None, max_length=128)
    notes: str | None = None


class TransferItem(BaseModel):
    product_id: int
    quantity: Decimal = Field(gt=0, decimal_places=3)


class TransferCreate(BaseModel):
    origin_warehouse_id: int
    destination_warehouse_id: int
    items: list[TransferItem] = Field(min_length=1)
    notes: str | None = None


class MovementQuery(BaseModel):
    type: MovementType | None = None
    product_id: int | None = None
    warehouse_id: int | None = None
    user_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class BatchRead(BaseModel):
    id: int
    batch_number: str
    product_id: int
    warehouse_id: int
    supplier_id: int | None
    quantity_initial: Decimal
    quantity_current: Decimal  # read only, moved by the ledger alone
    unit_cost: Decimal
    is_exhausted: bool
    received_at: datetime
    expires_at: datetime | None

    class Config:
        from_attributes = True


class MovementRead(BaseModel):
    id: int
    type: MovementType
    reason: MovementReason | None
    batch_id: int
    product_id: int
    warehouse_id: int
    counterpart_warehouse_id: int | None
    quantity: Decimal
    unit_cost: Decimal | None
    total_cost: Decimal | None
    stock_before: Decimal | None
    stock_after: Decimal | None
    reference_type: str | None
    reference_id: str | None
    performed_by: int
    created_at: datetime

    class Config:
        from_attributes = True
