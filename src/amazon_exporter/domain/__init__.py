from .models import (
    Budget,
    Category,
    Charge,
    Order,
    TransactionUpdate,
    UnapprovedTransaction,
    format_charge_date,
    parse_charge_date,
)

__all__ = [
    "Budget",
    "Category",
    "Charge",
    "Order",
    "TransactionUpdate",
    "UnapprovedTransaction",
    "format_charge_date",
    "parse_charge_date",
]
