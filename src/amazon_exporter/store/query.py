from __future__ import annotations

import math
import re
from typing import Optional

# Plain decimal numerals only: "20", "-3", "19.99", ".5", "1e3".
# No surrounding whitespace, digit separators, inf or nan.
_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_amount(query: str) -> Optional[float]:
    """Return the monetary value a search query denotes, or None for a text query.

    Numeric interpretation wins whenever the query parses, so "2024" searches
    prices and amounts rather than dates. Out-of-range numerals such as
    "1e999" are text.
    """
    if not _NUMBER_RE.fullmatch(query or ""):
        return None
    try:
        value = float(query)
    except (OverflowError, ValueError):
        return None
    if math.isinf(value):
        return None
    return value
