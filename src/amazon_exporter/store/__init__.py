"""Order persistence: schema, item interning, upsert, search and load."""

from .db import AMOUNT_TOLERANCE, OrderStore, open_store
from .errors import RecordNotFound, StoreError

__all__ = [
    "AMOUNT_TOLERANCE",
    "OrderStore",
    "RecordNotFound",
    "StoreError",
    "open_store",
]
