from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockledger.app.db.models.core_types import AuditStatus


class AuditCreate(BaseModel):
    warehouse_id: int
    name: str = Field(min_length=1, max_length=200)
    scheduled_at: datetime | None = None
    notes: str | None = None


class AuditItemUpdate(BaseModel):
    counted_quantity: Decimal = Field(ge=0, decimal_places=3)
    notes: str | None = None


class AuditQuery(BaseModel):
    warehouse_id: int | None = None
    status: AuditStatus | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class AuditItemRead(BaseModel):
    id: int
    product_id: int
    system_stock: Decimal
    counted_stock: Decimal | None
    variance: Decimal | None
    variance_cost: Decimal | None
    is_adjusted: bool
    notes: str | None

    class Config:
        from_attributes = True


class AuditRead(BaseModel):
    id: int
    code: str
    name: str
    warehouse_id: int
    status: AuditStatus
    total_variance: Decimal | None
    variance_cost: Decimal | None
    scheduled_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True
