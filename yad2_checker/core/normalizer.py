import logging
from collections.abc import Mapping
from typing import Any, Iterable, Iterator, Optional
from urllib.parse import urljoin

from yad2_checker.models import NO_PRICE, NO_TITLE, Listing

logger = logging.getLogger(__name__)

BASE_ORIGIN = "https://www.yad2.co.il"
ITEM_URL = BASE_ORIGIN + "/realestate/item/{id}"

# what the old page scraper put in place of a missing href
_LINK_PLACEHOLDERS = {"no link", "#"}


def _text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def resolve_link(link: str) -> str:
    if not link or link.lower() in _LINK_PLACEHOLDERS:
        return ""
    try:
        return urljoin(BASE_ORIGIN + "/", link)
    except ValueError:
        # e.g. "//[oops" trips urllib's IPv6 host check
        logger.debug("Unparseable link dropped: %r", link)
        return ""


def normalize(raw: Any) -> Optional[Listing]:
    """Map a supplier item into a Listing, or None when it has no identity."""
    if not isinstance(raw, Mapping):
        return None

    listing_id = _text(raw.get("id"))
    link = resolve_link(_text(raw.get("link")))
    if not link and listing_id:
        link = ITEM_URL.format(id=listing_id)
    if not link:
        return None

    return Listing(
        id=listing_id,
        link=link,
        title=_text(raw.get("title")) or NO_TITLE,
        price=_text(raw.get("price")) or NO_PRICE,
    )


class BatchNormalizer:
    """Normalizes a batch and keeps count of what was dropped."""

    def __init__(self) -> None:
        self.skipped = 0

    def __call__(self, items: Iterable[Any]) -> Iterator[Listing]:
        for raw in items:
            listing = normalize(raw)
            if listing is None:
                self.skipped += 1
                logger.debug("Skipping item without id or link: %r", raw)
                continue
            yield listing
