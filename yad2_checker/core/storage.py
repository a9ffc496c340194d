import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from yad2_checker.core.errors import StoreFault
from yad2_checker.models import Listing

logger = logging.getLogger(__name__)

DATA_DIR = Path("./data")
DEFAULT_STORE_URI = f"sqlite:///{DATA_DIR / 'listings.db'}"


class ListingStore(ABC):
    """Durable set of known listings, keyed by Listing.key.

    Both operations must be safe to call concurrently with the same key.
    Persistence failures raise StoreFault.
    """

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def link_exists(self, link: str) -> bool:
        ...

    @abstractmethod
    def try_claim(self, listing: Listing) -> bool:
        """Persist the listing if its identity is unknown.

        True iff this call stored it; an existing key or link gives False.
        """

    @abstractmethod
    def count(self) -> int:
        ...

    def close(self) -> None:
        pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def listing_record(listing: Listing, now: datetime) -> Dict[str, Any]:
    return {
        "id": listing.id,
        "link": listing.link,
        "title": listing.title,
        "price": listing.price,
        "created_at": now.isoformat(),
        "updated_at": now.isoformat(),
    }


class JsonListingStore(ListingStore):
    """Seen listings kept in one JSON file (or only in memory when path is None).

    The file is rewritten on every claim. A plain JSON list of keys, the
    format of the old seen_ids.json, is accepted on load.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = self._load()
        self._links = {r["link"] for r in self._records.values() if r.get("link")}

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreFault(f"cannot read {self.path}: {e}") from e
        if isinstance(data, list):
            return {str(k): {"id": str(k), "link": ""} for k in data}
        if not isinstance(data, dict):
            raise StoreFault(f"unexpected content in {self.path}")
        return data

    def _save(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._records, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreFault(f"cannot write {self.path}: {e}") from e

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def link_exists(self, link: str) -> bool:
        with self._lock:
            return link in self._links

    def try_claim(self, listing: Listing) -> bool:
        key = listing.key
        with self._lock:
            if key in self._records or listing.link in self._links:
                return False
            self._records[key] = listing_record(listing, utcnow())
            self._links.add(listing.link)
            try:
                self._save()
            except StoreFault:
                # keep memory in line with the file
                del self._records[key]
                self._links.discard(listing.link)
                raise
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._records)


def _uri_path(uri: str, scheme: str) -> str:
    # "sqlite:///data/x.db" -> "data/x.db", "sqlite:////abs/x.db" -> "/abs/x.db"
    rest = uri[len(scheme) + len("://"):]
    return rest[1:] if rest.startswith("/") else rest


def open_store(uri: str) -> ListingStore:
    """Open a store from a connection string.

    sqlite:///path/to.db, sqlite:// (in memory), json:///path/to.json,
    a bare *.json path, or memory://.
    """
    from yad2_checker.core.sqlite_store import SqliteListingStore

    if uri == "memory://":
        return JsonListingStore()
    if uri.startswith("sqlite://"):
        return SqliteListingStore(_uri_path(uri, "sqlite") or ":memory:")
    if uri.startswith("json://"):
        path = _uri_path(uri, "json")
        return JsonListingStore(Path(path) if path else None)
    if uri.endswith(".json"):
        return JsonListingStore(Path(uri))
    raise ValueError(f"Unsupported store URI: {uri!r}")
