from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import settings
from backend.app.core.errors import register_exception_handlers
from backend.app.core.logging_config import configure_logging
from backend.app.db.session import SessionLocal
from backend.services.debt_ledger import DebtLedgerSync
from backend.services.drift_monitor import DriftMonitor
from backend.services.invoices import LocalInvoiceStorage
from backend.services.serializer import KeyedSerialExecutor


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    executor = KeyedSerialExecutor(max_workers=settings.ledger_workers, name="debt-ledger")
    app.state.debt_sync = DebtLedgerSync(
        executor,
        SessionLocal,
        history_limit=settings.debt_history_limit,
        retention_months=settings.debt_retention_months,
    )
    app.state.drift_monitor = DriftMonitor(
        SessionLocal,
        interval=settings.drift_monitor_interval_seconds,
        page_size=settings.scan_page_size,
        batch_size=settings.snapshot_batch_size,
    )
    app.state.invoice_storage = LocalInvoiceStorage(settings.invoice_dir, settings.invoice_base_url)

    if settings.drift_monitor_enabled:
        await app.state.drift_monitor.start()
    try:
        yield
    finally:
        await app.state.drift_monitor.stop()
        executor.shutdown(wait=True)


app = FastAPI(title="STOCKFLOW ORDERS", version="0.1.0", lifespan=lifespan)
register_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
