"""
Datastore gateway.

Accès ligne par ligne aux tables `products`, `orders` et aux scans paginés.
Chaque écriture est committée immédiatement : atomicité par ligne,
jamais de transaction multi-lignes.

Toute erreur SQLAlchemy est rollbackée puis remontée en PersistenceError.
"""
from __future__ import annotations

from typing import Iterator, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError, PersistenceError, StockConflictError
from backend.app.db.models.models_v1 import Order, Product

T = TypeVar("T")


def commit_or_raise(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to {action}") from exc


def get_product(db: Session, product_id: int, *, for_update: bool = False) -> Product:
    stmt = select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    try:
        product = db.execute(stmt).scalar_one_or_none()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to read product {product_id}") from exc
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product


def apply_stock_change(
    db: Session,
    product_id: int,
    change: int,
    *,
    allow_negative: bool = False,
) -> tuple[Product, int, int]:
    """
    Applique `change` au stock d'un produit (verrou FOR UPDATE, commit immédiat).

    Retourne (product, stock_before, stock_after).
    Un stock négatif est refusé (StockConflictError) sauf `allow_negative`.
    """
    product = get_product(db, product_id, for_update=True)
    stock_before = int(product.stock)
    stock_after = stock_before + change

    if stock_after < 0 and not allow_negative:
        db.rollback()
        raise StockConflictError(product_id, requested=-change, available=stock_before)

    product.stock = stock_after
    commit_or_raise(db, f"update stock of product {product_id}")
    return product, stock_before, stock_after


def set_stock(db: Session, product_id: int, stock: int) -> Product:
    """Écriture hors cycle de commande : volontairement non journalisée."""
    product = get_product(db, product_id, for_update=True)
    product.stock = stock
    commit_or_raise(db, f"set stock of product {product_id}")
    return product


def create_product(db: Session, *, name: str, price, stock: int) -> Product:
    product = Product(name=name, price=price, stock=stock)
    db.add(product)
    commit_or_raise(db, "create product")
    return product


def scan_pages(db: Session, model: type[T], order_by, *, page_size: int) -> Iterator[list[T]]:
    """
    Parcourt une table par pages bornées, jusqu'à une page incomplète.
    """
    offset = 0
    while True:
        try:
            page = list(
                db.execute(select(model).order_by(order_by).offset(offset).limit(page_size))
                .scalars()
                .all()
            )
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Failed to scan {model.__tablename__}") from exc

        if page:
            yield page
        if len(page) < page_size:
            return
        offset += page_size


def get_order(db: Session, order_id: str, *, for_update: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    try:
        order = db.execute(stmt).scalar_one_or_none()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to read order {order_id}") from exc
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
    return order


def save_order(db: Session, order: Order) -> Order:
    db.add(order)
    commit_or_raise(db, f"save order {order.id}")
    return order


def delete_order_row(db: Session, order: Order) -> None:
    db.delete(order)
    commit_or_raise(db, f"delete order {order.id}")
