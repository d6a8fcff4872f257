"""
Amazon Exporter - order receipt archive.

Stores purchase receipts scraped from an Amazon account in SQLite, searches
them by price, charged amount, card, item text or date, and cross-references
them against unapproved YNAB transactions for manual categorization.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
