"""
Drift monitor.

Compare le stock réel (`products.stock`) au dernier snapshot expliqué
(`stock_snapshots`). Tout écart non expliqué par le journal produit un
mouvement DRIFT_ADJUSTMENT qui referme l'écart et recale le snapshot.

Propriétés :
- idempotent (deux passes sans changement => 0 ajustement)
- jamais fatal (erreur => passe abandonnée, retourne 0)
- un produit sans snapshot est seulement initialisé, sans mouvement
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError, PersistenceError
from backend.app.db.models.core_types import MovementKind
from backend.app.db.models.models_v1 import Product, StockSnapshot
from backend.services.gateway import get_product, scan_pages
from backend.services.movements import record_movement, upsert_snapshots

logger = logging.getLogger(__name__)

MONITOR_REFERENCE = "MONITOR"
DEFAULT_PAGE_SIZE = 1000
DEFAULT_BATCH_SIZE = 1000


def _recheck_drift(db: Session, product_id: int) -> tuple[str, int, int] | None:
    """Retourne (nom, snapshot, stock réel) si l'écart existe toujours, sinon None."""
    try:
        product = get_product(db, product_id, for_update=True)
    except NotFoundError:
        return None
    snap = db.get(StockSnapshot, product_id, populate_existing=True)
    if snap is None or int(snap.stock) == int(product.stock):
        db.rollback()
        return None
    return product.name, int(snap.stock), int(product.stock)


def run_reconciliation_pass(
    session_factory: Callable[[], Session],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Retourne le nombre d'ajustements journalisés."""
    db = session_factory()
    try:
        snapshots: dict[int, int] = {}
        for page in scan_pages(db, StockSnapshot, StockSnapshot.product_id, page_size=page_size):
            for snap in page:
                snapshots[int(snap.product_id)] = int(snap.stock)

        drifted: list[int] = []
        seeds: list[tuple[int, int]] = []
        for page in scan_pages(db, Product, Product.id, page_size=page_size):
            for product in page:
                live = int(product.stock)
                known = snapshots.get(int(product.id))
                if known is None:
                    seeds.append((int(product.id), live))
                elif known != live:
                    drifted.append(int(product.id))

        adjustments = 0
        for product_id in drifted:
            # Relecture sous verrou : une vente a pu se journaliser depuis le scan
            fresh = _recheck_drift(db, product_id)
            if fresh is None:
                continue
            name, known, live = fresh
            mv = record_movement(
                db,
                product_id=product_id,
                product_name=name,
                delta=live - known,
                stock_before=known,
                stock_after=live,
                kind=MovementKind.drift_adjustment,
                reference_id=MONITOR_REFERENCE,
                reason="Stock changed outside of the order lifecycle",
            )
            if mv is not None:
                adjustments += 1
                logger.info(
                    "Drift on product %s (%s): %s -> %s (delta=%+d)",
                    product_id,
                    name,
                    known,
                    live,
                    live - known,
                )

        if seeds:
            upsert_snapshots(db, seeds, batch_size=batch_size)
            logger.info("Seeded %d stock snapshots", len(seeds))

        return adjustments
    except (PersistenceError, SQLAlchemyError):
        db.rollback()
        logger.exception("Reconciliation pass aborted, next run will retry")
        return 0
    finally:
        db.close()


class DriftMonitor:
    """
    Tâche périodique annulable, possédée par le lifespan de l'application.

    `run_once()` est synchrone et sérialisé : une passe planifiée et une passe
    à la demande ne se chevauchent jamais.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        interval: float = 60.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.interval = interval
        self.page_size = page_size
        self.batch_size = batch_size
        self._pass_lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self.passes = 0
        self.last_adjustments = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        with self._pass_lock:
            adjustments = run_reconciliation_pass(
                self.session_factory,
                page_size=self.page_size,
                batch_size=self.batch_size,
            )
            self.passes += 1
            self.last_adjustments = adjustments
        return adjustments

    async def trigger(self) -> int:
        return await asyncio.to_thread(self.run_once)

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="drift-monitor")
        logger.info("Drift monitor started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Drift monitor stopped")

    async def _loop(self) -> None:
        # Première passe immédiate : initialise / rattrape au démarrage
        while True:
            try:
                await self.trigger()
            except Exception:
                logger.exception("Unexpected drift monitor failure")
            await asyncio.sleep(self.interval)
