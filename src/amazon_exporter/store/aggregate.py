from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Sequence

from ..domain.models import Charge, Order
from ..logging import get_logger

LOG = get_logger("store-aggregate")


def rows_to_orders(rows: Iterable[Sequence]) -> List[Order]:
    """Fold left-join rows into one Order per id, newest charge first.

    Each row is (id, href, price, card, amount, date, item); item is None for
    an order without items. The first row seen for an id supplies the order
    fields. Dates that do not parse sort last and are otherwise kept.
    """
    by_id: Dict[str, Order] = {}
    for order_id, href, price, card, amount, day, item in rows:
        order = by_id.get(order_id)
        if order is None:
            order = Order(
                id=order_id,
                href=href or "",
                items=[],
                price=float(price or 0.0),
                charge=Charge(card=card or "", amount=float(amount or 0.0), date=day or ""),
            )
            by_id[order_id] = order
        if item is not None:
            order.items.append(item)

    orders = list(by_id.values())
    return sorted(orders, key=_charge_sort_key, reverse=True)


def _charge_sort_key(order: Order) -> date:
    day = order.charge.day
    if day is None:
        LOG.warning("Order %s has unparseable charge date %r; sorting it last", order.id, order.charge.date)
        return date.min
    return day
