from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

NO_TITLE = "No title"
NO_PRICE = "No price"

RawItem = Mapping[str, Any]


@dataclass(frozen=True)
class Listing:
    id: str                   # upstream token, may be empty
    link: str                 # absolute URL
    title: str                # NO_TITLE when missing
    price: str                # NO_PRICE when missing
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> str:
        """Identity key: the upstream id, or the link when there is none."""
        return self.id or self.link

    @property
    def has_sentinel(self) -> bool:
        return self.title == NO_TITLE or self.price == NO_PRICE


@dataclass(frozen=True)
class Subscriber:
    id: str                   # chat id as string, e.g. "12345" or "@channel"
    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or self.id


@dataclass(frozen=True)
class SourceDescriptor:
    kind: str                 # "markers", "legacy" or "html"
    url: str
    raw: str


@dataclass(frozen=True)
class SearchFilter:
    top_area: str | None = None
    area: str | None = None
    city: str | None = None
    neighborhood: str | None = None
    min_rooms: str | None = None
    max_rooms: str | None = None
    min_price: str | None = None
    max_price: str | None = None
    extra: tuple[tuple[str, str], ...] = ()


@dataclass
class CycleReport:
    sources_visited: int = 0
    sources_failed: int = 0
    items_fetched: int = 0
    listings_normalized: int = 0
    items_skipped: int = 0
    new_listings: int = 0
    suppressed: int = 0
    notifications_attempted: int = 0
    notifications_succeeded: int = 0
    notifications_failed: int = 0
    cancelled: bool = False
    failed_sources: list[str] = field(default_factory=list)

    def summary(self) -> str:
        text = (
            f"sources={self.sources_visited} (failed {self.sources_failed}), "
            f"items={self.items_fetched}, normalized={self.listings_normalized}, "
            f"skipped={self.items_skipped}, new={self.new_listings}, "
            f"suppressed={self.suppressed}, "
            f"sent={self.notifications_succeeded}/{self.notifications_attempted}"
        )
        if self.cancelled:
            text += " [cancelled]"
        return text
