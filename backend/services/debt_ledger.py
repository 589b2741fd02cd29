"""
Debt ledger.

Un document JSON par client :
    {"items": [{id, kind, amount, paid, date, notes}, ...],
     "history": [{timestamp, items_snapshot, action, type}, ...]}

Le document est lu, modifié puis réécrit en entier. Les écritures d'un même
client passent TOUJOURS par `DebtLedgerSync` (file par client) pour ne pas
écraser une mise à jour concurrente.
"""
from __future__ import annotations

import calendar
import copy
import logging
from concurrent.futures import Future
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Any, Callable

from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.db.models.core_types import DebtKind, LedgerAction
from backend.app.db.models.models_v1 import CustomerLedger, Order, utcnow
from backend.services.gateway import commit_or_raise
from backend.services.serializer import KeyedSerialExecutor

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 500
RETENTION_MONTHS = 3
CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


def _parse_date(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def months_before(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def empty_document() -> dict[str, Any]:
    return {"items": [], "history": []}


def is_settled(item: dict[str, Any]) -> bool:
    return _money(item.get("paid", 0)) >= _money(item.get("amount", 0))


def prune_items(items: list[dict[str, Any]], *, now: datetime, months: int) -> list[dict[str, Any]]:
    """Retire les lignes soldées plus vieilles que la fenêtre ; les dettes ouvertes restent."""
    cutoff = months_before(now, months)
    return [it for it in items if not (is_settled(it) and _parse_date(it["date"]) < cutoff)]


def _push_history(
    doc: dict[str, Any],
    *,
    action: LedgerAction,
    now: datetime,
    limit: int,
) -> None:
    doc["history"].append(
        {
            "timestamp": now.isoformat(),
            "items_snapshot": copy.deepcopy(doc["items"]),
            "action": action.value,
            "type": DebtKind.order.value,
        }
    )
    if len(doc["history"]) > limit:
        doc["history"] = doc["history"][-limit:]


def _load(db: Session, customer_id: str) -> tuple[CustomerLedger | None, dict[str, Any]]:
    ledger = db.get(CustomerLedger, customer_id)
    if ledger is None:
        return None, empty_document()
    doc = copy.deepcopy(ledger.document) or empty_document()
    doc.setdefault("items", [])
    doc.setdefault("history", [])
    return ledger, doc


def _store(db: Session, ledger: CustomerLedger | None, customer_id: str, doc: dict[str, Any]) -> None:
    if ledger is None:
        db.add(CustomerLedger(customer_id=customer_id, document=doc))
    else:
        ledger.document = doc
    commit_or_raise(db, f"write debt ledger of customer {customer_id}")


def apply_order_debt(
    db: Session,
    *,
    customer_id: str,
    order_id: str,
    amount,
    order_date: datetime,
    now: datetime | None = None,
    history_limit: int = HISTORY_LIMIT,
    retention_months: int = RETENTION_MONTHS,
) -> bool:
    """
    Crée ou met à jour la ligne de dette d'une commande (idempotent sur order_id).

    Retourne True si le document a été réécrit.
    """
    now = now or utcnow()
    amount = _money(amount)
    ledger, doc = _load(db, customer_id)

    before = len(doc["items"])
    doc["items"] = prune_items(doc["items"], now=now, months=retention_months)
    changed = len(doc["items"]) != before

    line = next((it for it in doc["items"] if it["id"] == order_id), None)
    if line is None:
        _push_history(doc, action=LedgerAction.create, now=now, limit=history_limit)
        doc["items"].append(
            {
                "id": order_id,
                "kind": DebtKind.order.value,
                "amount": str(amount),
                "paid": "0.00",
                "date": order_date.isoformat(),
                "notes": "",
            }
        )
        changed = True
    elif _money(line["amount"]) != amount:
        _push_history(doc, action=LedgerAction.update, now=now, limit=history_limit)
        line["amount"] = str(amount)
        changed = True

    if not changed:
        return False

    _store(db, ledger, customer_id, doc)
    logger.info("Debt ledger of customer %s updated for order %s (amount=%s)", customer_id, order_id, amount)
    return True


def apply_payment(
    db: Session,
    *,
    customer_id: str,
    line_id: str,
    amount,
    note: str | None = None,
    now: datetime | None = None,
    history_limit: int = HISTORY_LIMIT,
) -> dict[str, Any]:
    now = now or utcnow()
    amount = _money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive", amount=str(amount))

    ledger, doc = _load(db, customer_id)
    if ledger is None:
        raise NotFoundError(f"No debt ledger for customer {customer_id}", customer_id=customer_id)

    line = next((it for it in doc["items"] if it["id"] == line_id), None)
    if line is None:
        raise NotFoundError(f"Debt line {line_id} not found", customer_id=customer_id, line_id=line_id)

    balance = _money(line["amount"]) - _money(line["paid"])
    if amount > balance:
        raise ValidationError(
            "Payment exceeds outstanding balance",
            amount=str(amount),
            balance=str(balance),
        )

    _push_history(doc, action=LedgerAction.payment, now=now, limit=history_limit)
    line["paid"] = str(_money(line["paid"]) + amount)
    if note:
        line["notes"] = note

    _store(db, ledger, customer_id, doc)
    return line


def get_ledger(db: Session, customer_id: str) -> dict[str, Any]:
    ledger = db.get(CustomerLedger, customer_id)
    if ledger is None:
        raise NotFoundError(f"No debt ledger for customer {customer_id}", customer_id=customer_id)
    return ledger.document


class DebtLedgerSync:
    """Planifie les read-modify-write du ledger dans la file du client."""

    def __init__(
        self,
        executor: KeyedSerialExecutor,
        session_factory: Callable[[], Session],
        *,
        history_limit: int = HISTORY_LIMIT,
        retention_months: int = RETENTION_MONTHS,
    ):
        self.executor = executor
        self.session_factory = session_factory
        self.history_limit = history_limit
        self.retention_months = retention_months

    def _run(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        db = self.session_factory()
        try:
            return fn(db, **kwargs)
        finally:
            db.close()

    def schedule_order(self, order: Order) -> Future | None:
        if not order.customer_id:
            return None
        task = partial(
            self._run,
            apply_order_debt,
            customer_id=order.customer_id,
            order_id=order.id,
            amount=order.total,
            order_date=order.created_at,
            history_limit=self.history_limit,
            retention_months=self.retention_months,
        )
        return self.executor.enqueue(order.customer_id, task)

    def schedule_payment(
        self,
        customer_id: str,
        *,
        line_id: str,
        amount,
        note: str | None = None,
    ) -> Future:
        task = partial(
            self._run,
            apply_payment,
            customer_id=customer_id,
            line_id=line_id,
            amount=amount,
            note=note,
            history_limit=self.history_limit,
        )
        return self.executor.enqueue(customer_id, task)
