from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    uom: str = Field(default="unit", min_length=1, max_length=32)
    barcode: str | None = Field(default=None, min_length=1, max_length=64)
    family_id: int | None = None
    # stocking unit -> family base unit
    conversion_factor: Decimal = Field(default=Decimal("1"), gt=0, decimal_places=4)
    stock_min: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=3)
    active: bool = True


class ProductQuery(BaseModel):
    search: str | None = None
    family_id: int | None = None
    include_inactive: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    payment_term_days: int | None = Field(default=None, ge=0)
    active: bool = True


class WarehouseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    uom: str
    barcode: str | None
    family_id: int | None
    conversion_factor: Decimal
    stock_min: Decimal
    active: bool

    class Config:
        from_attributes = True


class SupplierRead(BaseModel):
    id: int
    name: str
    email: str | None
    payment_term_days: int | None
    active: bool

    class Config:
        from_attributes = True


class WarehouseRead(BaseModel):
    id: int
    name: str
    active: bool

    class Config:
        from_attributes = True
