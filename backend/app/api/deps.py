from __future__ import annotations

from typing import Generator

from fastapi import Request

from backend.app.db.session import SessionLocal
from backend.services.debt_ledger import DebtLedgerSync
from backend.services.drift_monitor import DriftMonitor
from backend.services.invoices import InvoiceStorage


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_debt_sync(request: Request) -> DebtLedgerSync:
    return request.app.state.debt_sync


def get_drift_monitor(request: Request) -> DriftMonitor:
    return request.app.state.drift_monitor


def get_invoice_storage(request: Request) -> InvoiceStorage:
    return request.app.state.invoice_storage
