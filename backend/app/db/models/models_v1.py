from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base
from backend.app.db.models.core_types import MovementKind, OrderStatus

# SQLite n'auto-incrémente que "INTEGER PRIMARY KEY"
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- CATALOGUE ----------
class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    # Quantité en main, seule source de vérité du stock
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (CheckConstraint("price >= 0", name="ck_product_price_nonneg"),)


# ---------- INVENTORY ----------
class StockMovement(Base):
    """Journal append-only : seul `reviewed` change après insertion."""

    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # Pas de FK : le journal survit à la suppression du produit
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[MovementKind] = mapped_column(Enum(MovementKind, name="movement_kind"), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255))
    reviewed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("stock_after = stock_before + delta", name="ck_stock_movement_balance"),
        Index("ix_stock_movements_product_time", "product_id", "created_at"),
    )


class StockSnapshot(Base):
    """Dernier stock connu et expliqué par le journal, une ligne par produit."""

    __tablename__ = "stock_snapshots"
    product_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# ---------- SALES ----------
class Order(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64), index=True)
    business_name: Mapped[str | None] = mapped_column(String(255))

    # Copie figée des lignes : {product_id, name, quantity, unit_price, subtotal}
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.pending_request,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_orders_created_at", "created_at"),)


# ---------- CUSTOMERS ----------
class CustomerLedger(Base):
    """Document de dettes d'un client, réécrit en entier par le sérialiseur."""

    __tablename__ = "customer_ledgers"
    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
