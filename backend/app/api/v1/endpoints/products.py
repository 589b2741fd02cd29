from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product
from backend.app.schemas.product import ProductCreate, ProductRead, StockSet
from backend.services import gateway

router = APIRouter(prefix="/products")


@router.get("", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db)):
    return db.execute(select(Product).order_by(Product.name, Product.id)).scalars().all()


@router.post("", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    # Le snapshot sera initialisé par le prochain passage du drift monitor
    return gateway.create_product(db, name=payload.name, price=payload.price, stock=payload.stock)


@router.patch("/{product_id}/stock", response_model=ProductRead)
def set_product_stock(product_id: int, payload: StockSet, db: Session = Depends(get_db)):
    """
    Correction manuelle du stock (inventaire physique, saisie back-office).
    - NON journalisée ici : le drift monitor produira le DRIFT_ADJUSTMENT
    """
    return gateway.set_stock(db, product_id, payload.stock)
