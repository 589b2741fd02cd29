"""
Invoice artifacts: rendu PDF (ticket étroit) et stockage objet.

Le stockage est une interface (upload / remove / signed_url) ; l'implémentation
fournie écrit sur disque.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from fpdf import FPDF

from backend.app.db.models.models_v1 import Order

logger = logging.getLogger(__name__)

TICKET_FORMAT = (220, 600)  # points


def invoice_name(order_id: str) -> str:
    return f"order_{order_id}.pdf"


class InvoiceStorage(Protocol):
    def upload(self, name: str, data: bytes) -> None: ...

    def remove(self, name: str) -> None: ...

    def signed_url(self, name: str) -> str: ...


class LocalInvoiceStorage:
    def __init__(self, root: str | Path, base_url: str = "/invoices"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, name: str) -> Path:
        # Pas de sous-dossiers : le nom est une clé plate
        return self.root / Path(name).name

    def upload(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(name).write_bytes(data)

    def remove(self, name: str) -> None:
        self._path(name).unlink()

    def signed_url(self, name: str) -> str:
        if not self._path(name).exists():
            raise FileNotFoundError(name)
        return f"{self.base_url}/{quote(Path(name).name)}"


def _latin1(text: str) -> str:
    # Polices core PDF : latin-1 uniquement
    return text.encode("latin-1", "replace").decode("latin-1")


def render_invoice(order: Order) -> bytes:
    pdf = FPDF(unit="pt", format=TICKET_FORMAT)
    pdf.set_margins(10, 10, 10)
    pdf.set_auto_page_break(True, margin=10)
    pdf.add_page()

    pdf.set_font("Courier", size=9)
    pdf.cell(0, 11, _latin1(f"Invoice #: {order.id}"))
    pdf.ln(11)
    customer = order.business_name or order.customer_name
    pdf.cell(0, 11, _latin1(f"Customer: {customer}"))
    pdf.ln(11)
    created = order.created_at or datetime.now()
    pdf.cell(0, 11, created.strftime("%Y-%m-%d %H:%M"), align="C")
    pdf.ln(16)

    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(0, 12, "ORDER", align="C")
    pdf.ln(16)

    total = Decimal("0")
    for item in order.items or []:
        qty = int(item.get("quantity", 0))
        price = Decimal(str(item.get("unit_price", 0)))
        subtotal = price * qty
        total += subtotal

        pdf.set_font("Helvetica", "B", 9)
        pdf.cell(0, 11, _latin1(str(item.get("name", ""))))
        pdf.ln(11)
        pdf.set_font("Courier", size=9)
        pdf.cell(100, 11, f"{qty} x ${price:.2f}")
        pdf.cell(0, 11, f"${subtotal:.2f}", align="R")
        pdf.ln(14)

    pdf.ln(6)
    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 16, f"TOTAL: ${total:.2f}", align="C")

    return bytes(pdf.output())


def publish_invoice(order: Order, storage: InvoiceStorage) -> str:
    name = invoice_name(order.id)
    storage.upload(name, render_invoice(order))
    logger.info("Invoice %s uploaded", name)
    return storage.signed_url(name)


def discard_invoice(order_id: str, storage: InvoiceStorage | None) -> bool:
    """Suppression best-effort : un artefact absent n'est pas une erreur."""
    if storage is None:
        return False
    name = invoice_name(order_id)
    try:
        storage.remove(name)
    except FileNotFoundError:
        logger.debug("No invoice %s to remove", name)
        return False
    except OSError:
        logger.warning("Failed to remove invoice %s", name, exc_info=True)
        return False
    return True
