from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Product, StockMovement, StockSnapshot


def movements_for(db: Session, product_id: int) -> list[StockMovement]:
    return list(
        db.execute(
            select(StockMovement).where(StockMovement.product_id == product_id).order_by(StockMovement.id)
        )
        .scalars()
        .all()
    )


def snapshot_of(db: Session, product_id: int) -> int | None:
    snap = db.execute(
        select(StockSnapshot)
        .where(StockSnapshot.product_id == product_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    return None if snap is None else snap.stock


def live_stock(db: Session, product_id: int) -> int:
    return db.execute(select(Product.stock).where(Product.id == product_id)).scalar_one()
