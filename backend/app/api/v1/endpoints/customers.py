from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeout
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, get_debt_sync
from backend.app.core.errors import PersistenceError
from backend.services import debt_ledger
from backend.services.debt_ledger import DebtLedgerSync

router = APIRouter(prefix="/customers")

PAYMENT_TIMEOUT_SECONDS = 30


class PaymentCreate(BaseModel):
    line_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    note: str | None = Field(default=None, max_length=255)


@router.get("/{customer_id}/ledger")
def get_customer_ledger(customer_id: str, db: Session = Depends(get_db)):
    return debt_ledger.get_ledger(db, customer_id)


@router.post("/{customer_id}/ledger/payments")
def add_payment(
    customer_id: str,
    payload: PaymentCreate,
    debt_sync: DebtLedgerSync = Depends(get_debt_sync),
):
    # Écrit via la file du client ; attend son tour pour remonter les erreurs métier
    future = debt_sync.schedule_payment(
        customer_id,
        line_id=payload.line_id,
        amount=payload.amount,
        note=payload.note,
    )
    try:
        line = future.result(timeout=PAYMENT_TIMEOUT_SECONDS)
    except FutureTimeout as exc:
        raise PersistenceError(
            f"Debt ledger of customer {customer_id} is busy",
            customer_id=customer_id,
        ) from exc
    return {"ok": True, "customer_id": customer_id, "line": line}
