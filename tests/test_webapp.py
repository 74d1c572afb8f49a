from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from strikegold.core.config import AppConfig
from strikegold.core.runtime import build_runtime
from strikegold.core.secrets import MemorySecretStore
from strikegold.webapp.api import create_app

NO_DATA_CSV = "Symbol,Date,Time,Open,High,Low,Close,Volume\nZZZZ.US,N/D,N/D,N/D,N/D,N/D,N/D,N/D\n"


def _upstream(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/v7/finance/quote":
        if request.url.params["symbols"] == "AAPL":
            return httpx.Response(200, json={"quoteResponse": {"result": [{"regularMarketPrice": 190.0}]}})
        return httpx.Response(200, json={"quoteResponse": {"result": []}})
    if path.startswith("/v8/finance/chart/"):
        return httpx.Response(200, json={"chart": {"result": []}})
    if path.startswith("/v7/finance/options/"):
        return httpx.Response(
            200,
            json={
                "optionChain": {
                    "result": [
                        {
                            "expirationDates": [1737072000],
                            "options": [{"calls": [{"strike": 100, "bid": 2.3, "ask": 2.5}], "puts": []}],
                        }
                    ]
                }
            },
        )
    if request.url.host.startswith("stooq"):
        return httpx.Response(200, text=NO_DATA_CSV)
    return httpx.Response(404)


@pytest.fixture
def client(storage, make_client):
    cfg = AppConfig(monitor={"enabled": False})
    runtime = build_runtime(cfg, secrets=MemorySecretStore(), client=make_client(_upstream), storage=storage)
    with TestClient(create_app(runtime)) as tc:
        yield tc


def test_price_endpoint(client) -> None:
    resp = client.get("/api/price/aapl")
    assert resp.status_code == 200
    assert resp.json() == {"symbol": "AAPL", "price": 190.0, "provider": "public"}


def test_quote_errors_map_to_status_codes(client) -> None:
    missing = client.get("/api/price/ZZZZ")
    assert missing.status_code == 404
    assert missing.json()["error"] == "no_data"
    blank = client.get("/api/price/%20")
    assert blank.status_code == 400
    assert blank.json()["error"] == "invalid_symbol"


def test_chain_endpoint(client) -> None:
    body = client.get("/api/chain/AAPL", params={"expiration": "2025-01-17"}).json()
    assert body["expirations"] == ["2025-01-17"]
    assert body["call_strikes"] == [100.0]
    assert body["calls"][0]["mid"] == pytest.approx(2.4)


def test_order_lifecycle(client) -> None:
    order = {
        "symbol": "AAPL",
        "expiration": "2025-01-17",
        "right": "call",
        "strike": 100,
        "side": "buy",
        "quantity": 2,
        "limit": 2.6,
    }
    placed = client.post("/api/orders", json=order)
    assert placed.status_code == 200
    saved = placed.json()
    assert saved["status"] == "filled"
    assert saved["fill_price"] == 2.5
    assert saved["fill_quantity"] == 2

    working = client.post("/api/orders", json={**order, "limit": 2.0, "tif": "gtc"}).json()
    assert working["status"] == "working"

    listed = client.get("/api/orders").json()
    assert {o["id"] for o in listed} == {saved["id"], working["id"]}
    assert [o["id"] for o in client.get("/api/orders", params={"status": "working"}).json()] == [working["id"]]

    assert client.delete(f"/api/orders/{saved['id']}").status_code == 200
    assert client.delete(f"/api/orders/{saved['id']}").status_code == 404

    status = client.get("/api/monitor").json()
    assert status["running"] is False
    assert status["stale"] is True
    assert status["working_orders"] == 1


def test_rejected_order_is_not_saved(client) -> None:
    resp = client.post(
        "/api/orders",
        json={"symbol": "AAPL", "expiration": "2025-01-17", "right": "call", "strike": 100, "side": "buy", "quantity": 0, "limit": 2.6},
    )
    assert resp.status_code == 422
    assert client.get("/api/orders").json() == []
