from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from yad2_checker.core.errors import StoreFault
from yad2_checker.core.storage import ListingStore, utcnow
from yad2_checker.models import Listing

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS listings (
    key TEXT PRIMARY KEY,
    id TEXT NOT NULL,
    link TEXT UNIQUE NOT NULL,
    title TEXT,
    price TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
)
"""


class SqliteListingStore(ListingStore):
    """Listing store backed by SQLite.

    The primary key on the identity key and the unique link column make the
    INSERT itself the check-and-record step; a constraint violation is the
    "already seen" answer.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.execute(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreFault(f"cannot open {db_path}: {e}") from e
        logger.debug("Listing store ready at %s", db_path)

    def exists(self, key: str) -> bool:
        try:
            with self._lock:
                row = self._conn.execute("SELECT 1 FROM listings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreFault(f"lookup of {key!r} failed: {e}") from e
        return row is not None

    def link_exists(self, link: str) -> bool:
        try:
            with self._lock:
                row = self._conn.execute("SELECT 1 FROM listings WHERE link = ?", (link,)).fetchone()
        except sqlite3.Error as e:
            raise StoreFault(f"lookup of {link!r} failed: {e}") from e
        return row is not None

    def try_claim(self, listing: Listing) -> bool:
        now = utcnow().isoformat()
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO listings (key, id, link, title, price, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (listing.key, listing.id, listing.link, listing.title, listing.price, now, now),
                )
        except sqlite3.IntegrityError:
            return False
        except sqlite3.Error as e:
            raise StoreFault(f"claim of {listing.key!r} failed: {e}") from e
        return True

    def get(self, key: str) -> Listing | None:
        try:
            with self._lock:
                row = self._conn.execute("SELECT * FROM listings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreFault(f"lookup of {key!r} failed: {e}") from e
        if row is None:
            return None
        return Listing(
            id=row["id"],
            link=row["link"],
            title=row["title"],
            price=row["price"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def count(self) -> int:
        try:
            with self._lock:
                return self._conn.execute("SELECT COUNT(*) FROM listings").fetchone()[0]
        except sqlite3.Error as e:
            raise StoreFault(f"count failed: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
