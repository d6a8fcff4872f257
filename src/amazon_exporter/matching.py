from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, List

from .domain.models import Order, UnapprovedTransaction
from .logging import get_logger
from .store import OrderStore

LOG = get_logger("matching")

DEFAULT_WINDOW = timedelta(hours=72)


@dataclass
class TransactionMatch:
    transaction: UnapprovedTransaction
    orders: List[Order] = field(default_factory=list)


def match_transactions(
    store: OrderStore,
    transactions: Iterable[UnapprovedTransaction],
    *,
    window: timedelta = DEFAULT_WINDOW,
) -> List[TransactionMatch]:
    """Attach candidate orders to each unapproved transaction.

    Candidates share the transaction's absolute amount (to the cent) and were
    charged strictly less than `window` away from the transaction date.
    Orders whose charge date does not parse are skipped.
    """
    matches: List[TransactionMatch] = []
    for tx in transactions:
        match = TransactionMatch(transaction=tx)
        for order in store.search(f"{abs(tx.amount):.2f}"):
            charged = order.charge.day
            if charged is None:
                LOG.warning("ignoring order %s, bad date %r", order.id, order.charge.date)
                continue
            if abs(tx.date - charged) < window:
                match.orders.append(order)
        matches.append(match)
    return matches
