from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, get_drift_monitor
from backend.app.db.models.core_types import MovementKind
from backend.app.schemas.stock_movement import StockMovementRead
from backend.services import movements
from backend.services.drift_monitor import DriftMonitor

router = APIRouter(prefix="/stock-movements")


class ReviewUpdate(BaseModel):
    reviewed: bool = True


@router.get("", response_model=list[StockMovementRead])
def list_stock_movements(
    product_id: int | None = None,
    kind: MovementKind | None = None,
    reviewed: bool | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return movements.list_movements(
        db,
        product_id=product_id,
        kind=kind,
        reviewed=reviewed,
        limit=limit,
        offset=offset,
    )


@router.patch("/{movement_id}/reviewed", response_model=StockMovementRead)
def mark_movement_reviewed(movement_id: int, payload: ReviewUpdate, db: Session = Depends(get_db)):
    return movements.mark_reviewed(db, movement_id, payload.reviewed)


@router.post("/reconcile")
async def force_reconciliation(monitor: DriftMonitor = Depends(get_drift_monitor)):
    adjustments = await monitor.trigger()
    return {"ok": True, "adjustments": adjustments}
