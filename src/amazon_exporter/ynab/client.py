from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..domain.models import Budget, Category, TransactionUpdate, UnapprovedTransaction
from ..logging import get_logger


class YnabError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class YnabCache:
    """Budgets and categories fetched from YNAB, kept until invalidate() is called."""

    budgets: Optional[List[Budget]] = None
    categories: Dict[str, Dict[str, List[Category]]] = field(default_factory=dict)

    def invalidate(self) -> None:
        self.budgets = None
        self.categories.clear()


class YnabClient:
    """Thin client for the YNAB API with session, timeouts, and logging.

    Only implements the subset we use: budgets, categories, unapproved
    transactions, and approving transactions.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        cache: Optional[YnabCache] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = int(timeout)
        self.cache = cache if cache is not None else YnabCache()
        self.log = get_logger("ynab-client")
        self.s = session or requests.Session()
        self.s.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })

    # ---------- helpers ----------
    def _url(self, path: str) -> str:
        return f"{self.base}{path}"

    def _data(self, r: requests.Response, action: str) -> Dict[str, Any]:
        if r.status_code != 200:
            raise YnabError(f"could not {action}: {r.status_code}", r.status_code)
        body = r.json() or {}
        return body.get("data") or {}

    def _get(self, path: str, action: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = self._url(path)
        self.log.info(f"ynab GET {url}")
        r = self.s.get(url, params=params, timeout=self.timeout)
        return self._data(r, action)

    # ---------- budgets ----------
    def budgets(self) -> List[Budget]:
        """Budgets newest-modified first; budgets never modified are skipped."""
        if self.cache.budgets:
            return self.cache.budgets

        data = self._get("/budgets", "get budgets")
        budgets: List[Budget] = []
        for b in data.get("budgets") or []:
            modified = b.get("last_modified_on")
            if not modified:
                continue
            budgets.append(
                Budget(id=str(b["id"]), name=str(b.get("name") or ""), last_modified=_parse_timestamp(modified))
            )
        budgets.sort(key=lambda b: b.last_modified, reverse=True)
        self.log.debug("budgets: %s", [b.name for b in budgets])
        self.cache.budgets = budgets
        return budgets

    # ---------- categories ----------
    def categories(self, budget_id: str) -> Dict[str, List[Category]]:
        """Visible categories keyed by group name; hidden/deleted entries and empty groups dropped."""
        cached = self.cache.categories.get(budget_id)
        if cached is not None:
            return cached

        data = self._get(f"/budgets/{budget_id}/categories", "get categories")
        groups: Dict[str, List[Category]] = {}
        for group in data.get("category_groups") or []:
            if group.get("deleted") or group.get("hidden"):
                continue
            items = [
                Category(id=str(c["id"]), name=str(c.get("name") or ""))
                for c in group.get("categories") or []
                if not (c.get("hidden") or c.get("deleted"))
            ]
            if items:
                groups[str(group.get("name") or "")] = items
        self.cache.categories[budget_id] = groups
        return groups

    # ---------- transactions ----------
    def unapproved(self, budget_id: str) -> List[UnapprovedTransaction]:
        data = self._get(
            f"/budgets/{budget_id}/transactions",
            "get transactions",
            params={"type": "unapproved"},
        )
        transactions: List[UnapprovedTransaction] = []
        for td in data.get("transactions") or []:
            transactions.append(
                UnapprovedTransaction(
                    id=str(td["id"]),
                    amount=float(td.get("amount") or 0) / 1000,
                    date=date.fromisoformat(str(td["date"])),
                    payee=_first(
                        td.get("import_payee_name"),
                        td.get("import_payee_name_original"),
                        td.get("payee_name"),
                    ),
                )
            )
        return transactions

    def approve(self, budget_id: str, updates: Mapping[str, TransactionUpdate]) -> None:
        """Approve transactions, assigning each its category and payee."""
        if not updates:
            return
        payload = {
            "transactions": [
                {
                    "id": transaction_id,
                    "approved": True,
                    "category_id": update.category_id,
                    "payee_name": update.payee,
                }
                for transaction_id, update in updates.items()
            ]
        }
        url = self._url(f"/budgets/{budget_id}/transactions")
        self.log.info(f"ynab PATCH {url} ({len(updates)} transaction(s))")
        r = self.s.patch(url, json=payload, timeout=self.timeout)
        self._data(r, "update")


def _parse_timestamp(value: str) -> datetime:
    # YNAB sends "2024-03-01T12:00:00.000Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _first(*values: Optional[str]) -> str:
    for v in values:
        if v is not None:
            return v
    return ""
