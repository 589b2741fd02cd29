"""
Movement recorder.

Chaque changement de stock confirmé produit :
    - une ligne append-only dans `stock_movements`
    - la mise à jour du snapshot `stock_snapshots[product_id] = stock_after`

Règle : appeler APRÈS le commit de l'écriture produit, jamais avant.
Un échec ici est loggé et n'annule pas le stock déjà appliqué ;
le drift monitor rattrapera l'écart au prochain passage.
"""
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError
from backend.app.db.models.core_types import MovementKind
from backend.app.db.models.models_v1 import StockMovement, StockSnapshot, utcnow
from backend.services.gateway import commit_or_raise

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_BATCH = 1000


def _set_snapshot(db: Session, product_id: int, stock: int) -> None:
    snap = db.get(StockSnapshot, product_id)
    if snap is None:
        db.add(StockSnapshot(product_id=product_id, stock=stock))
    else:
        snap.stock = stock
        snap.updated_at = utcnow()


def record_movement(
    db: Session,
    *,
    product_id: int,
    product_name: str,
    delta: int,
    stock_before: int,
    stock_after: int,
    kind: MovementKind,
    reference_id: str,
    reason: str | None = None,
) -> StockMovement | None:
    mv = StockMovement(
        product_id=product_id,
        product_name=product_name,
        delta=delta,
        stock_before=stock_before,
        stock_after=stock_after,
        kind=kind,
        reference_id=str(reference_id),
        reason=reason,
        reviewed=False,
    )
    try:
        db.add(mv)
        _set_snapshot(db, product_id, stock_after)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to record %s movement for product %s (delta=%s, ref=%s)",
            kind.value,
            product_id,
            delta,
            reference_id,
        )
        return None

    logger.debug(
        "Movement %s product=%s %s -> %s (ref=%s)",
        kind.value,
        product_id,
        stock_before,
        stock_after,
        reference_id,
    )
    return mv


def upsert_snapshots(
    db: Session,
    rows: Iterable[tuple[int, int]],
    *,
    batch_size: int = DEFAULT_SNAPSHOT_BATCH,
) -> int:
    """
    Upsert (product_id, stock) par lots de `batch_size`, un commit par lot.
    Lève PersistenceError si un lot échoue.
    """
    pending = list(rows)
    written = 0
    for start in range(0, len(pending), batch_size):
        chunk = dict(pending[start : start + batch_size])
        existing = {
            s.product_id: s
            for s in db.execute(
                select(StockSnapshot).where(StockSnapshot.product_id.in_(list(chunk)))
            ).scalars()
        }
        now = utcnow()
        for pid, stock in chunk.items():
            snap = existing.get(pid)
            if snap is None:
                db.add(StockSnapshot(product_id=pid, stock=stock, updated_at=now))
            else:
                snap.stock = stock
                snap.updated_at = now
        commit_or_raise(db, "upsert stock snapshots")
        written += len(chunk)
    return written


def list_movements(
    db: Session,
    *,
    product_id: int | None = None,
    kind: MovementKind | None = None,
    reviewed: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockMovement]:
    stmt = select(StockMovement).order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    if kind is not None:
        stmt = stmt.where(StockMovement.kind == kind)
    if reviewed is not None:
        stmt = stmt.where(StockMovement.reviewed == reviewed)
    return list(db.execute(stmt.offset(offset).limit(limit)).scalars().all())


def mark_reviewed(db: Session, movement_id: int, reviewed: bool = True) -> StockMovement:
    mv = db.get(StockMovement, movement_id)
    if mv is None:
        raise NotFoundError(f"Movement {movement_id} not found", movement_id=movement_id)
    mv.reviewed = reviewed
    commit_or_raise(db, f"mark movement {movement_id} reviewed")
    return mv
