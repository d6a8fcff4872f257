from __future__ import annotations

import inspect
import sqlite3
from datetime import date, datetime, timezone
from typing import Dict, List

from starlette.testclient import TestClient

from amazon_exporter.api import create_app
from amazon_exporter.domain.models import Budget, Category, TransactionUpdate, UnapprovedTransaction
from amazon_exporter.store import OrderStore, StoreError
from amazon_exporter.ynab import YnabCache

from conftest import make_order


class _FakeYnab:
    def __init__(self) -> None:
        self.cache = YnabCache()
        self.approved: List[Dict[str, TransactionUpdate]] = []

    def budgets(self) -> List[Budget]:
        return [Budget(id="b1", name="Household", last_modified=datetime(2024, 3, 1, tzinfo=timezone.utc))]

    def categories(self, budget_id: str) -> Dict[str, List[Category]]:
        return {"Everyday": [Category(id="c1", name="Groceries")]}

    def unapproved(self, budget_id: str) -> List[UnapprovedTransaction]:
        return [UnapprovedTransaction(id="t1", amount=-19.99, date=date(2024, 3, 4), payee="Amazon")]

    def approve(self, budget_id: str, updates: Dict[str, TransactionUpdate]) -> None:
        self.approved.append(dict(updates))


def _client(store: OrderStore, ynab=None) -> TestClient:
    return TestClient(create_app(store=store, ynab=ynab))


def test_put_purchase_creates_then_replaces(store: OrderStore) -> None:
    client = _client(store)
    order = make_order("111-1")

    first = client.put("/purchases/111-1", json=order.to_dict())
    assert first.status_code == 201

    second = client.put("/purchases/111-1", json=order.to_dict())
    assert second.status_code == 200

    assert store.load("111-1") == order


def test_put_purchase_rejects_bad_input(store: OrderStore) -> None:
    client = _client(store)

    mismatch = client.put("/purchases/other", json=make_order("111-1").to_dict())
    assert mismatch.status_code == 400

    garbage = client.put(
        "/purchases/111-1", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert garbage.status_code == 400

    bad_price = client.put("/purchases/111-1", json={"id": "111-1", "price": "a lot"})
    assert bad_price.status_code == 400

    assert client.get("/api/purchases", params={"q": "Visa"}).json() == []


def test_put_purchase_maps_storage_errors_to_500(store: OrderStore, monkeypatch) -> None:
    def _broken_save(order):
        raise StoreError("purchase not inserted", sqlite3.OperationalError("disk I/O error"))

    monkeypatch.setattr(store, "save", _broken_save)
    client = _client(store)

    response = client.put("/purchases/111-1", json=make_order("111-1").to_dict())
    assert response.status_code == 500
    assert response.text == "Internal Server Error"


def test_search_and_detail_endpoints(store: OrderStore) -> None:
    store.save(make_order("cable", items=["USB-C Cable"], price=19.99, date="March 3, 2024"))
    store.save(make_order("pen", items=["Zebra Pen"], price=4.5, date="January 1, 2024"))
    client = _client(store)

    by_text = client.get("/api/purchases", params={"q": "Cable"})
    assert by_text.status_code == 200
    assert [o["id"] for o in by_text.json()] == ["cable"]

    by_price = client.get("/api/purchases", params={"q": "4.5"})
    assert [o["id"] for o in by_price.json()] == ["pen"]

    assert client.get("/api/purchases").json() == []

    detail = client.get("/api/purchases/pen")
    assert detail.status_code == 200
    assert detail.json()["charge"]["date"] == "January 1, 2024"

    assert client.get("/api/purchases/missing").status_code == 404


def test_cors_preflight_allows_any_origin(store: OrderStore) -> None:
    client = _client(store)

    response = client.options(
        "/purchases/111-1",
        headers={
            "Origin": "https://www.amazon.com",
            "Access-Control-Request-Method": "PUT",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_ynab_endpoints_unavailable_without_config(store: OrderStore) -> None:
    client = _client(store)

    assert client.get("/api/ynab/budgets").status_code == 503
    assert client.get("/api/ynab/unapproved").status_code == 503
    assert client.get("/api/health").json()["ynab"] is False


def test_ynab_unapproved_attaches_matching_orders(store: OrderStore) -> None:
    store.save(make_order("match", price=19.99, date="March 3, 2024"))
    store.save(make_order("stale", price=19.99, date="January 1, 2024"))
    client = _client(store, ynab=_FakeYnab())

    payload = client.get("/api/ynab/unapproved").json()

    assert payload["budget_id"] == "b1"
    assert payload["categories"] == {"Everyday": [{"id": "c1", "name": "Groceries"}]}
    [tx] = payload["transactions"]
    assert tx["id"] == "t1"
    assert tx["date"] == "2024-03-04"
    assert [o["id"] for o in tx["orders"]] == ["match"]


def test_ynab_approve_skips_uncategorized(store: OrderStore) -> None:
    ynab = _FakeYnab()
    client = _client(store, ynab=ynab)

    response = client.post(
        "/api/ynab/approve",
        json={
            "budget_id": "b1",
            "updates": {
                "t1": {"category_id": "c1", "payee": "Amazon"},
                "t2": {"category_id": "-1", "payee": "Amazon"},
            },
        },
    )

    assert response.status_code == 200
    assert response.json() == {"approved": ["t1"]}
    assert ynab.approved == [
        {"t1": TransactionUpdate(category_id="c1", payee="Amazon", category_name="Groceries")}
    ]


def test_ynab_refresh_invalidates_cache(store: OrderStore) -> None:
    ynab = _FakeYnab()
    ynab.cache.categories["b1"] = {}
    client = _client(store, ynab=ynab)

    assert client.post("/api/ynab/refresh").status_code == 204
    assert ynab.cache.categories == {}


def test_ynab_endpoints_run_in_threadpool(store: OrderStore) -> None:
    app = create_app(store=store, ynab=_FakeYnab())
    endpoints = {route.path: route.endpoint for route in app.routes}

    # requests blocks; sync endpoints are dispatched to Starlette's threadpool
    for path in ("/api/ynab/budgets", "/api/ynab/unapproved", "/api/ynab/refresh"):
        assert not inspect.iscoroutinefunction(endpoints[path])
