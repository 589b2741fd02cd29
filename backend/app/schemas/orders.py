from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import OrderStatus


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    # Prix unitaire : override explicite > prix fourni > prix catalogue
    unit_price_override: Decimal | None = Field(default=None, ge=0)
    unit_price: Decimal | None = Field(default=None, ge=0)


class OrderCreate(BaseModel):
    customer_name: str = Field(default="guest", min_length=1, max_length=255)
    customer_id: str | None = Field(default=None, max_length=64)
    business_name: str | None = Field(default=None, max_length=255)
    items: list[OrderItemCreate] = Field(min_length=1)


class OrderLine(BaseModel):
    product_id: int
    name: str
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class StockDelta(BaseModel):
    product_id: int
    # > 0 : unités retirées du stock ; < 0 : unités rendues
    quantity: int


class OrderEdit(BaseModel):
    items: list[OrderLine] = Field(min_length=1)
    stock_deltas: list[StockDelta] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemRead(BaseModel):
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderRead(BaseModel):
    id: str
    customer_name: str
    customer_id: str | None
    business_name: str | None
    items: list[OrderItemRead]
    total: Decimal
    status: OrderStatus
    created_at: datetime

    class Config:
        from_attributes = True
