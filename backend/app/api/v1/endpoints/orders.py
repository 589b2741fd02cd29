from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, get_debt_sync, get_invoice_storage
from backend.app.schemas.orders import OrderCreate, OrderEdit, OrderRead, OrderStatusUpdate
from backend.services import orders as order_service
from backend.services.debt_ledger import DebtLedgerSync
from backend.services.invoices import InvoiceStorage, publish_invoice

router = APIRouter(prefix="/orders")


@router.get("", response_model=list[OrderRead])
def list_orders(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return order_service.list_orders(db, limit=limit, offset=offset)


@router.post("", response_model=OrderRead, status_code=201)
def place_order(payload: OrderCreate, db: Session = Depends(get_db)):
    return order_service.place_order(db, payload)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_service.get_order(db, order_id)


@router.put("/{order_id}", response_model=OrderRead)
def edit_order(
    order_id: str,
    payload: OrderEdit,
    db: Session = Depends(get_db),
    debt_sync: DebtLedgerSync = Depends(get_debt_sync),
):
    return order_service.edit_order(db, order_id, payload, debt_sync)


@router.delete("/{order_id}")
def delete_order(
    order_id: str,
    was_fulfilled: bool | None = None,
    db: Session = Depends(get_db),
    storage: InvoiceStorage = Depends(get_invoice_storage),
):
    return order_service.delete_order(db, order_id, was_fulfilled=was_fulfilled, storage=storage)


@router.patch("/{order_id}/status", response_model=OrderRead)
def set_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    debt_sync: DebtLedgerSync = Depends(get_debt_sync),
):
    return order_service.set_order_status(db, order_id, payload.status, debt_sync)


@router.get("/{order_id}/invoice")
def get_invoice(
    order_id: str,
    db: Session = Depends(get_db),
    storage: InvoiceStorage = Depends(get_invoice_storage),
):
    order = order_service.get_order(db, order_id)
    return {"ok": True, "order_id": order.id, "pdf": publish_invoice(order, storage)}
