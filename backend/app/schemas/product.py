from decimal import Decimal

from pydantic import BaseModel, Field


class ProductRead(BaseModel):
    id: int
    name: str
    price: Decimal
    stock: int

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0)
    stock: int = Field(default=0, ge=0)


class StockSet(BaseModel):
    stock: int
