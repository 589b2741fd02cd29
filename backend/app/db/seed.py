from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from backend.app.db.base import Base
from backend.app.db.models.models_v1 import Product
from backend.app.db.session import SessionLocal, engine

DEMO_PRODUCTS = [
    ("Harina 000 x 1kg", Decimal("1200.00"), 40),
    ("Yerba mate x 500g", Decimal("2350.00"), 25),
    ("Aceite girasol x 900ml", Decimal("1890.00"), 18),
]


def run_seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        for name, price, stock in DEMO_PRODUCTS:
            exists = db.scalar(select(Product).where(Product.name == name))
            if not exists:
                db.add(Product(name=name, price=price, stock=stock))
        db.commit()

        # Pas de snapshot ici : le premier passage du drift monitor les initialise
        print(f"SEED OK: {len(DEMO_PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
