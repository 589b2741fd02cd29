"""
Taxonomie d'erreurs du domaine.

Les services lèvent ces exceptions ; la couche HTTP les traduit en réponses
via `register_exception_handlers`.
"""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, "error": type(self).__name__, **self.context}


class ValidationError(DomainError):
    status_code = 422


class NotFoundError(DomainError):
    status_code = 404


class StockConflictError(DomainError):
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id} "
            f"(requested={requested}, available={available})",
            product_id=product_id,
            requested=requested,
            available=available,
            shortfall=requested - available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PersistenceError(DomainError):
    status_code = 503


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
