import os

# Avant tout import backend.* : pas de Postgres ni de monitor en test
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DRIFT_MONITOR_ENABLED", "false")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from backend.app.db.base import Base  # noqa: E402
from backend.app.db.models.models_v1 import Product, StockSnapshot  # noqa: E402
from backend.services.serializer import KeyedSerialExecutor  # noqa: E402


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite fichier, une par test.

    Fichier (et non :memory:) pour que les threads du sérialiseur et du
    drift monitor ouvrent leurs propres sessions sur les mêmes données.
    """
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'stockflow.sqlite3'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def executor():
    ex = KeyedSerialExecutor(max_workers=4, name="test-serial")
    try:
        yield ex
    finally:
        ex.shutdown(wait=True)


@pytest.fixture
def make_product(db_session):
    """Crée un produit ; `snapshot=True` aligne aussi son snapshot sur le stock."""

    def _make(name="Yerba mate", price="20.00", stock=5, snapshot=True) -> Product:
        product = Product(name=name, price=Decimal(price), stock=stock)
        db_session.add(product)
        db_session.flush()
        if snapshot:
            db_session.add(StockSnapshot(product_id=product.id, stock=stock))
        db_session.commit()
        return product

    return _make

