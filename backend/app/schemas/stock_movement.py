from datetime import datetime

from pydantic import BaseModel

from backend.app.db.models.core_types import MovementKind


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    delta: int
    stock_before: int
    stock_after: int
    kind: MovementKind
    reference_id: str
    reason: str | None
    reviewed: bool
    created_at: datetime

    class Config:
        from_attributes = True
