import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_db, get_debt_sync, get_drift_monitor, get_invoice_storage
from backend.app.main import app
from backend.services.debt_ledger import DebtLedgerSync
from backend.services.drift_monitor import DriftMonitor
from backend.services.invoices import LocalInvoiceStorage


@pytest.fixture
def client(session_factory, executor, tmp_path):
    """
    Client HTTP sans lifespan : dépendances branchées sur la base de test,
    pas de tâche périodique.
    """

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    debt_sync = DebtLedgerSync(executor, session_factory)
    monitor = DriftMonitor(session_factory, interval=3600)
    storage = LocalInvoiceStorage(tmp_path / "invoices", base_url="/files")

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_debt_sync] = lambda: debt_sync
    app.dependency_overrides[get_drift_monitor] = lambda: monitor
    app.dependency_overrides[get_invoice_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create_product(client, name="Harina", price="20.00", stock=5):
    r = client.post("/v1/products", json={"name": name, "price": price, "stock": stock})
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_place_order_over_http(client):
    product = _create_product(client)

    r = client.post("/v1/orders", json={"customer_name": "Kiosco Sol", "items": [{"product_id": product["id"], "quantity": 3}]})

    assert r.status_code == 201, r.text
    body = r.json()
    assert float(body["total"]) == 60.0
    assert body["status"] == "PENDING_REQUEST"
    assert client.get(f"/v1/orders/{body['id']}").status_code == 200
    [p] = client.get("/v1/products").json()
    assert p["stock"] == 2


def test_errors_are_mapped_to_status_codes(client):
    product = _create_product(client, stock=1)

    conflict = client.post("/v1/orders", json={"items": [{"product_id": product["id"], "quantity": 4}]})
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "StockConflictError"
    assert conflict.json()["shortfall"] == 3

    missing = client.post("/v1/orders", json={"items": [{"product_id": 987654, "quantity": 1}]})
    assert missing.status_code == 404

    invalid = client.post("/v1/orders", json={"items": [{"product_id": product["id"], "quantity": 0}]})
    assert invalid.status_code == 422

    assert client.get("/v1/orders/unknown").status_code == 404


def test_out_of_band_edit_is_caught_by_forced_reconciliation(client):
    product = _create_product(client, stock=10)
    # premier passage : initialise le snapshot
    assert client.post("/v1/stock-movements/reconcile").json()["adjustments"] == 0

    r = client.patch(f"/v1/products/{product['id']}/stock", json={"stock": 7})
    assert r.status_code == 200

    assert client.post("/v1/stock-movements/reconcile").json()["adjustments"] == 1
    assert client.post("/v1/stock-movements/reconcile").json()["adjustments"] == 0

    [mv] = client.get("/v1/stock-movements", params={"kind": "DRIFT_ADJUSTMENT"}).json()
    assert (mv["delta"], mv["stock_before"], mv["stock_after"]) == (-3, 10, 7)

    reviewed = client.patch(f"/v1/stock-movements/{mv['id']}/reviewed", json={"reviewed": True})
    assert reviewed.json()["reviewed"] is True
    assert client.get("/v1/stock-movements", params={"reviewed": False}).json() == []


def test_order_lifecycle_with_debt_ledger(client, executor):
    product = _create_product(client, price="12.50", stock=10)
    order = client.post(
        "/v1/orders",
        json={"customer_name": "Despensa Ana", "customer_id": "C-42", "items": [{"product_id": product["id"], "quantity": 2}]},
    ).json()

    assert client.patch(f"/v1/orders/{order['id']}/status", json={"status": "ACCEPTED"}).status_code == 200
    assert client.patch(f"/v1/orders/{order['id']}/status", json={"status": "FULFILLED"}).status_code == 200
    assert executor.drain(timeout=10)

    ledger = client.get("/v1/customers/C-42/ledger").json()
    assert [(it["id"], it["amount"]) for it in ledger["items"]] == [(order["id"], "25.00")]

    edit = client.put(
        f"/v1/orders/{order['id']}",
        json={
            "items": [{"product_id": product["id"], "name": "Harina", "quantity": 3, "unit_price": "12.50"}],
            "stock_deltas": [{"product_id": product["id"], "quantity": 1}],
        },
    )
    assert edit.status_code == 200, edit.text
    assert executor.drain(timeout=10)

    ledger = client.get("/v1/customers/C-42/ledger").json()
    assert [(it["id"], it["amount"]) for it in ledger["items"]] == [(order["id"], "37.50")]

    r = client.post("/v1/customers/C-42/ledger/payments", json={"line_id": order["id"], "amount": "37.50"})
    assert r.status_code == 200, r.text
    assert r.json()["line"]["paid"] == "37.50"
    assert client.get("/v1/customers/C-42/ledger").json()["items"][0]["paid"] == "37.50"

    # livrée : la suppression ne restaure pas
    r = client.delete(f"/v1/orders/{order['id']}")
    assert r.status_code == 200
    assert r.json()["restored"] == []
    [p] = client.get("/v1/products").json()
    assert p["stock"] == 7


def test_invalid_status_transition(client):
    product = _create_product(client)
    order = client.post("/v1/orders", json={"items": [{"product_id": product["id"], "quantity": 1}]}).json()
    client.patch(f"/v1/orders/{order['id']}/status", json={"status": "FULFILLED"})

    r = client.patch(f"/v1/orders/{order['id']}/status", json={"status": "ACCEPTED"})

    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


def test_invoice_is_rendered_and_removed_with_order(client, tmp_path):
    product = _create_product(client)
    order = client.post("/v1/orders", json={"items": [{"product_id": product["id"], "quantity": 1}]}).json()

    r = client.get(f"/v1/orders/{order['id']}/invoice")

    assert r.status_code == 200
    assert r.json()["pdf"] == f"/files/order_{order['id']}.pdf"
    pdf = tmp_path / "invoices" / f"order_{order['id']}.pdf"
    assert pdf.read_bytes().startswith(b"%PDF")

    assert client.delete(f"/v1/orders/{order['id']}").status_code == 200
    assert not pdf.exists()


def test_payment_errors_are_reported_to_the_caller(client, executor):
    product = _create_product(client, price="10.00", stock=5)
    order = client.post(
        "/v1/orders",
        json={"customer_id": "C-77", "items": [{"product_id": product["id"], "quantity": 2}]},
    ).json()
    client.patch(f"/v1/orders/{order['id']}/status", json={"status": "FULFILLED"})
    assert executor.drain(timeout=10)

    unknown_customer = client.post("/v1/customers/C-404/ledger/payments", json={"line_id": "nope", "amount": "5"})
    assert unknown_customer.status_code == 404
    assert unknown_customer.json()["error"] == "NotFoundError"

    unknown_line = client.post("/v1/customers/C-77/ledger/payments", json={"line_id": "nope", "amount": "5"})
    assert unknown_line.status_code == 404

    overpaid = client.post("/v1/customers/C-77/ledger/payments", json={"line_id": order["id"], "amount": "25"})
    assert overpaid.status_code == 422
    assert overpaid.json()["error"] == "ValidationError"
    assert overpaid.json()["balance"] == "20.00"

    assert client.get("/v1/customers/C-77/ledger").json()["items"][0]["paid"] == "0.00"
