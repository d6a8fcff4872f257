from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from ..domain.models import Order, TransactionUpdate
from ..logging import get_logger
from ..matching import match_transactions
from ..store import OrderStore, RecordNotFound, StoreError, open_store
from ..ynab import YnabClient, YnabError


LOG = get_logger("api")


def _internal_error() -> PlainTextResponse:
    return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(
    root_dir: Optional[str] = None,
    *,
    db_path: Optional[str] = None,
    store: Optional[OrderStore] = None,
    ynab: Optional[YnabClient] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing order ingest/search and the YNAB review API."""

    orders = store or open_store(db_path, dotenv_dir=root_dir)
    if ynab is None:
        LOG.info("YNAB not configured; /api/ynab endpoints will return 503.")

    def _ynab() -> YnabClient:
        if ynab is None:
            raise HTTPException(status_code=503, detail="YNAB is not configured")
        return ynab

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "db_path": orders.db_path, "ynab": ynab is not None})

    async def put_purchase(request: Request) -> Response:
        order_id = request.path_params["order_id"]
        try:
            order = Order.from_dict(await request.json())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid request body: {exc}") from exc
        if order.id != order_id:
            raise HTTPException(status_code=400, detail="Order id does not match URL")

        try:
            created = orders.save(order)
        except StoreError as exc:
            LOG.error("Error saving purchase %s: %s", order.id, exc)
            return _internal_error()
        return Response(status_code=201 if created else 200)

    async def search_purchases(request: Request) -> JSONResponse:
        q = request.query_params.get("q") or ""
        if not q:
            return JSONResponse([])
        try:
            found = orders.search(q)
        except StoreError as exc:
            LOG.error("Search %r failed: %s", q, exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc
        return JSONResponse([o.to_dict() for o in found])

    async def purchase_detail(request: Request) -> JSONResponse:
        order_id = request.path_params["order_id"]
        try:
            order = orders.load(order_id)
        except RecordNotFound as exc:
            raise HTTPException(status_code=404, detail="Purchase not found") from exc
        return JSONResponse(order.to_dict())

    def ynab_budgets(_: Request) -> JSONResponse:
        client = _ynab()
        try:
            budgets = client.budgets()
        except (YnabError, requests.RequestException) as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(
            [{"id": b.id, "name": b.name, "last_modified": b.last_modified.isoformat()} for b in budgets]
        )

    def _budget_id(client: YnabClient, requested: Optional[str]) -> str:
        if requested:
            return requested
        budgets = client.budgets()
        if not budgets:
            raise HTTPException(status_code=500, detail="could not find budget ID")
        return budgets[0].id

    def ynab_unapproved(request: Request) -> JSONResponse:
        client = _ynab()
        try:
            budget_id = _budget_id(client, request.query_params.get("budget_id"))
            categories = client.categories(budget_id)
            transactions = client.unapproved(budget_id)
        except (YnabError, requests.RequestException) as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

        matches = match_transactions(orders, transactions)
        payload: Dict[str, Any] = {
            "budget_id": budget_id,
            "categories": {
                group: [{"id": c.id, "name": c.name} for c in cats] for group, cats in categories.items()
            },
            "transactions": [
                {
                    "id": m.transaction.id,
                    "amount": m.transaction.amount,
                    "date": m.transaction.date.isoformat(),
                    "payee": m.transaction.payee,
                    "orders": [o.to_dict() for o in m.orders],
                }
                for m in matches
            ],
        }
        return JSONResponse(payload)

    def _approve(client: YnabClient, requested_budget: Optional[str], requested: Dict[str, Any]) -> List[str]:
        budget_id = _budget_id(client, requested_budget)
        names = {c.id: c.name for cats in client.categories(budget_id).values() for c in cats}
        updates: Dict[str, TransactionUpdate] = {}
        for transaction_id, raw in requested.items():
            category_id = str(raw.get("category_id") or "")
            # "-1" is the "leave uncategorized" choice
            if not category_id or category_id == "-1":
                continue
            updates[transaction_id] = TransactionUpdate(
                category_id=category_id,
                payee=str(raw.get("payee") or ""),
                category_name=names.get(category_id, ""),
            )
        client.approve(budget_id, updates)
        LOG.info("Approved %d transaction(s) in budget %s", len(updates), budget_id)
        return sorted(updates)

    async def ynab_approve(request: Request) -> Response:
        client = _ynab()
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid request body") from exc
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Invalid request body")
        requested = body.get("updates") or {}
        if not isinstance(requested, dict) or not all(isinstance(v, dict) for v in requested.values()):
            raise HTTPException(status_code=400, detail="updates must map transaction ids to objects")

        # requests blocks; keep it off the event loop
        try:
            approved = await run_in_threadpool(_approve, client, body.get("budget_id"), requested)
        except (YnabError, requests.RequestException) as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse({"approved": approved})

    def ynab_refresh(_: Request) -> Response:
        _ynab().cache.invalidate()
        return Response(status_code=204)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/purchases/{order_id:str}", put_purchase, methods=["PUT"]),
        Route("/api/purchases", search_purchases, methods=["GET"]),
        Route("/api/purchases/{order_id:str}", purchase_detail, methods=["GET"]),
        Route("/api/ynab/budgets", ynab_budgets, methods=["GET"]),
        Route("/api/ynab/unapproved", ynab_unapproved, methods=["GET"]),
        Route("/api/ynab/approve", ynab_approve, methods=["POST"]),
        Route("/api/ynab/refresh", ynab_refresh, methods=["POST"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_methods=["POST", "PUT", "GET", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )
    return app


__all__ = ["create_app"]
