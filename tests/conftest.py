from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterator, List, Optional

import pytest

# Ensure src/ is importable when tests run from repo root without an install
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from amazon_exporter.domain.models import Charge, Order  # noqa: E402
from amazon_exporter.store import OrderStore  # noqa: E402


def make_order(
    order_id: str = "111-0000001-0000001",
    *,
    items: Optional[List[str]] = None,
    price: float = 19.99,
    card: str = "Visa ending in 1234",
    amount: Optional[float] = None,
    date: str = "March 3, 2024",
) -> Order:
    return Order(
        id=order_id,
        href=f"https://www.amazon.com/gp/css/summary/print.html?orderID={order_id}",
        items=list(items) if items is not None else ["USB-C Cable"],
        price=price,
        charge=Charge(card=card, amount=price if amount is None else amount, date=date),
    )


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "orders.sqlite3")


@pytest.fixture
def store(db_path: str) -> Iterator[OrderStore]:
    s = OrderStore(db_path)
    try:
        yield s
    finally:
        s.close()
