from __future__ import annotations

import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from ..config import load_db_path
from ..domain.models import Order
from ..logging import get_logger
from .aggregate import rows_to_orders
from .errors import RecordNotFound, StoreError
from .query import parse_amount


LOG = get_logger("store-db")

# Absolute tolerance when matching prices/amounts; absorbs float round-trip noise.
AMOUNT_TOLERANCE = 0.001

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS items (
  id    INTEGER PRIMARY KEY AUTOINCREMENT,
  item  TEXT UNIQUE
);

CREATE TABLE IF NOT EXISTS purchases (
  id      TEXT PRIMARY KEY,
  href    TEXT,
  price   REAL,
  card    TEXT,
  amount  REAL,
  date    TEXT
);

CREATE TABLE IF NOT EXISTS purchase_items (
  purchase_id  TEXT,
  item_id      INTEGER,
  FOREIGN KEY(purchase_id) REFERENCES purchases(id),
  FOREIGN KEY(item_id) REFERENCES items(id),
  PRIMARY KEY (purchase_id, item_id)
);
"""

ORDER_ROWS_SQL = """
SELECT
    p.id,
    p.href,
    p.price,
    p.card,
    p.amount,
    p.date,
    i.item
FROM purchases p
LEFT JOIN purchase_items pi ON p.id = pi.purchase_id
LEFT JOIN items i ON pi.item_id = i.id
WHERE ({where})
ORDER BY p.id ASC, i.item ASC;
"""

AMOUNT_WHERE = """
    p.price BETWEEN (? - ?) AND (? + ?)
    OR p.amount BETWEEN (? - ?) AND (? + ?)
"""

# Case-sensitive substring match; instr() avoids LIKE's ASCII case folding and wildcards.
# Filters join rows, so an item-only match carries just the matching items.
TEXT_WHERE = """
    instr(p.card, ?) > 0 OR instr(i.item, ?) > 0 OR instr(p.date, ?) > 0
"""


class OrderStore:
    """SQLite-backed order archive.

    - Ensures schema and WAL journaling on construction.
    - Holds a single connection; every read and write takes it exclusively,
      so there is never more than one writer and readers never see a
      half-written order.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            folder = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(folder, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        try:
            self._ensure_schema()
        except StoreError:
            self._conn.close()
            raise
        LOG.info(f"Order DB path: {self.db_path}")

    def __enter__(self) -> "OrderStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one transaction; commit on success, roll back on any error."""
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE;")
            try:
                yield self._conn
                self._conn.execute("COMMIT;")
            except BaseException:
                # SQLite may already have rolled back on its own
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK;")
                raise

    def _ensure_schema(self) -> None:
        try:
            with self.connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys=ON;")
                LOG.info("Ensuring order DB schema is present…")
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as exc:
            raise StoreError("schema not ensured", exc) from exc
        LOG.info("Order DB schema ensured.")

    # --------------- Writes ---------------
    def save(self, order: Order) -> bool:
        """Insert or fully replace an order; return True when it did not exist before."""
        items = sorted(set(order.items))
        with self.transaction() as conn:
            item_ids = [self.intern_item(item, conn) for item in items]

            exists = self._has_order(order.id, conn)
            if exists:
                _execute(
                    conn,
                    "existing purchase_items not deleted",
                    "DELETE FROM purchase_items WHERE purchase_id = ?;",
                    (order.id,),
                )
                _execute(
                    conn,
                    "existing purchase not deleted",
                    "DELETE FROM purchases WHERE id = ?;",
                    (order.id,),
                )

            _execute(
                conn,
                "purchase not inserted",
                """
                INSERT INTO purchases (id, href, price, card, amount, date)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    order.id,
                    order.href,
                    order.price,
                    order.charge.card,
                    order.charge.amount,
                    order.charge.date,
                ),
            )

            for item_id in item_ids:
                _execute(
                    conn,
                    "purchase item not inserted",
                    "INSERT INTO purchase_items (purchase_id, item_id) VALUES (?, ?);",
                    (order.id, item_id),
                )

        LOG.debug("Saved order %s with %d item(s) (%s)", order.id, len(item_ids), "replaced" if exists else "created")
        return not exists

    def intern_item(self, item: str, conn: sqlite3.Connection) -> int:
        """Return the id for an item's text, inserting it on first sight.

        Runs on the caller's connection without committing.
        """
        row = conn.execute("SELECT id FROM items WHERE item = ?;", (item,)).fetchone()
        if row is not None:
            return int(row[0])
        cur = _execute(conn, "item not inserted", "INSERT INTO items (item) VALUES (?);", (item,))
        return int(cur.lastrowid)

    @staticmethod
    def _has_order(order_id: str, conn: sqlite3.Connection) -> bool:
        row = conn.execute("SELECT id FROM purchases WHERE id = ?;", (order_id,)).fetchone()
        return row is not None

    # --------------- Reads ---------------
    def load(self, order_id: str) -> Order:
        orders = self._fetch_orders("p.id = ?", (order_id,))
        if not orders:
            raise RecordNotFound(order_id)
        return orders[0]

    def search(self, query: str) -> List[Order]:
        LOG.info("Search(%r)", query)
        value = parse_amount(query)
        if value is not None:
            return self.search_by_amount(value)
        return self.search_by_text(query)

    def search_by_amount(self, value: float) -> List[Order]:
        """Orders whose price or charged amount is within AMOUNT_TOLERANCE of value."""
        LOG.info("search_by_amount(%s)", value)
        bounds = (value, AMOUNT_TOLERANCE, value, AMOUNT_TOLERANCE)
        return self._fetch_orders(AMOUNT_WHERE, bounds + bounds)

    def search_by_text(self, text: str) -> List[Order]:
        """Orders whose card, date or an item contains text (case-sensitive).

        An order matched only through its items carries just the matching items.
        """
        LOG.info("search_by_text(%r)", text)
        return self._fetch_orders(TEXT_WHERE, (text, text, text))

    def _fetch_orders(self, where: str, params: Sequence[object]) -> List[Order]:
        with self.connect() as conn:
            rows = conn.execute(ORDER_ROWS_SQL.format(where=where), tuple(params)).fetchall()
        return rows_to_orders(rows)


def _execute(
    conn: sqlite3.Connection,
    phase: str,
    sql: str,
    params: Sequence[object],
) -> sqlite3.Cursor:
    try:
        return conn.execute(sql, tuple(params))
    except sqlite3.Error as exc:
        raise StoreError(phase, exc) from exc


def open_store(db_path: Optional[str] = None, *, dotenv_dir: Optional[str] = None) -> OrderStore:
    """Open the configured store, resolving the path from env/.env when not given."""
    if db_path is None:
        db_path = load_db_path(dotenv_dir or os.getcwd())
    return OrderStore(db_path)
