from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

# "January 2, 2006" as printed on Amazon invoices
CHARGE_DATE_FORMAT = "%B %d, %Y"


def parse_charge_date(text: str) -> Optional[date]:
    """Parse an invoice charge date, returning None when it does not match the format."""
    try:
        return datetime.strptime(text, CHARGE_DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def format_charge_date(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


@dataclass
class Charge:
    card: str = ""
    amount: float = 0.0
    date: str = ""  # raw invoice text, e.g. "March 3, 2024"

    @classmethod
    def on(cls, card: str, amount: float, day: date) -> "Charge":
        return cls(card=card, amount=float(amount), date=format_charge_date(day))

    @property
    def day(self) -> Optional[date]:
        return parse_charge_date(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return {"card": self.card, "amount": self.amount, "date": self.date}


@dataclass
class Order:
    id: str
    href: str = ""
    items: List[str] = field(default_factory=list)
    price: float = 0.0
    charge: Charge = field(default_factory=Charge)

    @classmethod
    def from_dict(cls, payload: Any) -> "Order":
        """Build an Order from its JSON wire shape.

        Raises ValueError when required fields are missing or mistyped.
        """
        if not isinstance(payload, dict):
            raise ValueError("order payload must be an object")
        order_id = payload.get("id")
        if not isinstance(order_id, str) or not order_id:
            raise ValueError("order id is required")
        items = payload.get("items") or []
        if not isinstance(items, list) or not all(isinstance(it, str) for it in items):
            raise ValueError("items must be a list of strings")
        charge_raw = payload.get("charge") or {}
        if not isinstance(charge_raw, dict):
            raise ValueError("charge must be an object")
        return cls(
            id=order_id,
            href=str(payload.get("href") or ""),
            items=list(items),
            price=_as_float(payload.get("price"), "price"),
            charge=Charge(
                card=str(charge_raw.get("card") or ""),
                amount=_as_float(charge_raw.get("amount"), "charge.amount"),
                date=str(charge_raw.get("date") or ""),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "href": self.href,
            "items": list(self.items),
            "price": self.price,
            "charge": self.charge.to_dict(),
        }


def _as_float(value: Any, name: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    return float(value)


@dataclass
class UnapprovedTransaction:
    id: str
    amount: float  # currency units; YNAB milliunits / 1000
    date: date
    payee: str


@dataclass
class Category:
    id: str
    name: str


@dataclass
class Budget:
    id: str
    name: str
    last_modified: datetime


@dataclass
class TransactionUpdate:
    category_id: str
    payee: str
    category_name: str = ""
