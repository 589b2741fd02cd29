"""
Order lifecycle.

Politique stock (uniforme) :
    - produit inconnu        => toute la commande est refusée (NotFoundError)
    - stock insuffisant      => toute la commande est refusée (StockConflictError)
    - le cycle de commande ne rend jamais un stock négatif
    - une restauration n'est jamais plafonnée

Chaque écriture produit est committée seule puis journalisée
(backend.services.movements). Pas de transaction multi-lignes : si une ligne
échoue en cours de route, les lignes déjà appliquées sont compensées.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import DomainError, NotFoundError, PersistenceError, StockConflictError, ValidationError
from backend.app.db.models.core_types import MovementKind, OrderStatus
from backend.app.db.models.models_v1 import Order, Product, utcnow
from backend.app.schemas.orders import OrderCreate, OrderEdit, OrderItemCreate
from backend.services.debt_ledger import DebtLedgerSync
from backend.services.gateway import (
    apply_stock_change,
    delete_order_row,
    get_order,
    get_product,
    save_order,
)
from backend.services.invoices import InvoiceStorage, discard_invoice
from backend.services.movements import record_movement

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.pending_request: {OrderStatus.accepted, OrderStatus.fulfilled},
    OrderStatus.accepted: {OrderStatus.fulfilled},
    OrderStatus.fulfilled: set(),  # terminal
}

_id_lock = threading.Lock()
_last_id = 0


def next_order_id() -> str:
    """Identifiant horodaté (ms), strictement croissant dans le processus."""
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
    return str(candidate)


def resolve_unit_price(item: OrderItemCreate, product: Product) -> Decimal:
    if item.unit_price_override is not None:
        return item.unit_price_override
    if item.unit_price is not None:
        return item.unit_price
    return Decimal(product.price)


def make_line(product_id: int, name: str, quantity: int, unit_price: Decimal) -> dict[str, Any]:
    unit_price = Decimal(unit_price).quantize(CENTS)
    return {
        "product_id": int(product_id),
        "name": name,
        "quantity": int(quantity),
        "unit_price": str(unit_price),
        "subtotal": str((unit_price * quantity).quantize(CENTS)),
    }


def order_total(lines: Iterable[dict[str, Any]]) -> Decimal:
    return sum((Decimal(line["subtotal"]) for line in lines), Decimal("0")).quantize(CENTS)


def _change_and_record(
    db: Session,
    product_id: int,
    change: int,
    *,
    kind: MovementKind,
    order_id: str,
    reason: str | None = None,
    allow_negative: bool = False,
) -> tuple[int, int]:
    product, before, after = apply_stock_change(db, product_id, change, allow_negative=allow_negative)
    record_movement(
        db,
        product_id=product_id,
        product_name=product.name,
        delta=change,
        stock_before=before,
        stock_after=after,
        kind=kind,
        reference_id=order_id,
        reason=reason,
    )
    return before, after


def _revert(
    db: Session,
    applied: list[tuple[int, int]],
    *,
    order_id: str,
    kind: MovementKind,
    reason: str,
) -> None:
    for product_id, change in reversed(applied):
        try:
            _change_and_record(
                db,
                product_id,
                -change,
                kind=kind,
                order_id=order_id,
                reason=reason,
                allow_negative=True,
            )
        except DomainError:
            logger.error(
                "Could not revert stock change %+d on product %s for order %s, manual correction needed",
                change,
                product_id,
                order_id,
                exc_info=True,
            )


# ---------- PLACE ----------
def place_order(db: Session, payload: OrderCreate) -> Order:
    # Validation complète avant la première écriture
    requested: dict[int, int] = defaultdict(int)
    resolved: list[tuple[OrderItemCreate, str, Decimal]] = []
    for item in payload.items:
        product = get_product(db, item.product_id)
        requested[item.product_id] += item.quantity
        if product.stock < requested[item.product_id]:
            raise StockConflictError(item.product_id, requested[item.product_id], int(product.stock))
        resolved.append((item, product.name, resolve_unit_price(item, product)))

    order_id = next_order_id()
    applied: list[tuple[int, int]] = []
    lines: list[dict[str, Any]] = []
    try:
        for item, name, unit_price in resolved:
            _change_and_record(db, item.product_id, -item.quantity, kind=MovementKind.sale, order_id=order_id)
            applied.append((item.product_id, -item.quantity))
            lines.append(make_line(item.product_id, name, item.quantity, unit_price))

        order = Order(
            id=order_id,
            customer_name=payload.customer_name,
            customer_id=payload.customer_id,
            business_name=payload.business_name,
            items=lines,
            total=order_total(lines),
            status=OrderStatus.pending_request,
            created_at=utcnow(),
        )
        save_order(db, order)
    except DomainError:
        _revert(
            db,
            applied,
            order_id=order_id,
            kind=MovementKind.order_delete_restore,
            reason="Order placement aborted",
        )
        raise

    logger.info("Order %s placed (%d lines, total=%s)", order.id, len(lines), order.total)
    return order


# ---------- EDIT ----------
def edit_order(
    db: Session,
    order_id: str,
    payload: OrderEdit,
    debt_sync: DebtLedgerSync | None = None,
) -> Order:
    """
    Les `stock_deltas` sont des changements incrémentaux calculés par
    l'appelant ; ils ne sont pas re-dérivés des anciennes/nouvelles lignes.
    """
    order = get_order(db, order_id)

    applied: list[tuple[int, int]] = []
    try:
        for delta in payload.stock_deltas:
            if delta.quantity == 0:
                continue
            _change_and_record(
                db,
                delta.product_id,
                -delta.quantity,
                kind=MovementKind.order_edit,
                order_id=order_id,
            )
            applied.append((delta.product_id, -delta.quantity))

        lines = [make_line(l.product_id, l.name, l.quantity, l.unit_price) for l in payload.items]
        order.items = lines
        order.total = order_total(lines)
        save_order(db, order)
    except DomainError:
        _revert(db, applied, order_id=order_id, kind=MovementKind.order_edit, reason="Order edit aborted")
        raise

    if order.status == OrderStatus.fulfilled and debt_sync is not None:
        debt_sync.schedule_order(order)

    logger.info("Order %s edited (total=%s)", order.id, order.total)
    return order


# ---------- DELETE ----------
def delete_order(
    db: Session,
    order_id: str,
    *,
    was_fulfilled: bool | None = None,
    storage: InvoiceStorage | None = None,
) -> dict[str, Any]:
    order = get_order(db, order_id)
    fulfilled = order.status == OrderStatus.fulfilled or bool(was_fulfilled)

    restored: list[dict[str, int]] = []
    if not fulfilled:
        for item in order.items or []:
            product_id = int(item["product_id"])
            quantity = int(item["quantity"])
            try:
                before, after = _change_and_record(
                    db,
                    product_id,
                    quantity,
                    kind=MovementKind.order_delete_restore,
                    order_id=order_id,
                    allow_negative=True,
                )
            except NotFoundError:
                logger.warning("Product %s of order %s no longer exists, stock not restored", product_id, order_id)
                continue
            except PersistenceError:
                logger.error(
                    "Delete of order %s aborted, stock already restored for products %s",
                    order_id,
                    [line["product_id"] for line in restored],
                )
                raise
            restored.append({"product_id": product_id, "quantity": quantity, "stock": after})

    delete_order_row(db, order)
    discard_invoice(order_id, storage)

    logger.info("Order %s deleted (%d lines restored)", order_id, len(restored))
    return {"ok": True, "order_id": order_id, "restored": restored}


# ---------- STATUS ----------
def set_order_status(
    db: Session,
    order_id: str,
    status: OrderStatus,
    debt_sync: DebtLedgerSync | None = None,
) -> Order:
    order = get_order(db, order_id)

    if order.status != status:
        if status not in ALLOWED_TRANSITIONS[order.status]:
            raise ValidationError(
                f"Invalid status transition {order.status.value} -> {status.value}",
                order_id=order_id,
            )
        order.status = status
        save_order(db, order)

    if status == OrderStatus.fulfilled:
        if not order.customer_id:
            logger.debug("Order %s has no customer id, debt ledger untouched", order_id)
        elif debt_sync is not None:
            debt_sync.schedule_order(order)

    return order


def list_orders(db: Session, *, limit: int = 100, offset: int = 0) -> list[Order]:
    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
    return list(db.execute(stmt).scalars().all())


__all__ = [
    "delete_order",
    "edit_order",
    "get_order",
    "list_orders",
    "next_order_id",
    "place_order",
    "set_order_status",
]
