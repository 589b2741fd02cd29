"""products, orders, stock movements, snapshots and customer ledgers

Revision ID: a1c0f3d2b9e4
Revises:
Create Date: 2026-10-19 09:12:05.118204
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "a1c0f3d2b9e4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MOVEMENT_KINDS = ("SALE", "ORDER_EDIT", "ORDER_DELETE_RESTORE", "DRIFT_ADJUSTMENT")
ORDER_STATUSES = ("PENDING_REQUEST", "ACCEPTED", "FULFILLED")


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    # Enum SQLAlchemy : stocke les NOMS des membres Python
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("stock_before", sa.Integer(), nullable=False),
        sa.Column("stock_after", sa.Integer(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("sale", "order_edit", "order_delete_restore", "drift_adjustment", name="movement_kind"),
            nullable=False,
        ),
        sa.Column("reference_id", sa.String(64), nullable=False),
        sa.Column("reason", sa.String(255)),
        sa.Column("reviewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("stock_after = stock_before + delta", name="ck_stock_movement_balance"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_product_time", "stock_movements", ["product_id", "created_at"])

    op.create_table(
        "stock_snapshots",
        sa.Column("product_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_id", sa.String(64)),
        sa.Column("business_name", sa.String(255)),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("pending_request", "accepted", "fulfilled", name="order_status"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "customer_ledgers",
        sa.Column("customer_id", sa.String(64), primary_key=True),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("customer_ledgers")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_table("stock_snapshots")
    op.drop_index("ix_stock_movements_product_time", table_name="stock_movements")
    op.drop_index("ix_stock_movements_product_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("products")
    sa.Enum(name="order_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="movement_kind").drop(op.get_bind(), checkfirst=True)
