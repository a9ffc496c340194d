from __future__ import annotations

import re
from typing import Optional, Sequence
from urllib.parse import urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from yad2_checker.models import RawItem, SourceDescriptor
from yad2_checker.suppliers.base import HttpSupplier
from yad2_checker.suppliers.descriptor import extract_filter, markers_query

# /realestate/item/<token> or /realestate/item/<area-slug>/<token>, last segment wins
ITEM_TOKEN = re.compile(r"/realestate/item/(?:[^/?#]+/)*([^/?#]+)")

# class names carry a build hash suffix, e.g. price_price__xQt90
TITLE_SELECTOR = '[class*="item-data-content_heading"]'
PRICE_SELECTOR = '[class*="price_price"]'


def search_page_url(descriptor: SourceDescriptor) -> str:
    parts = urlsplit(descriptor.url)
    query = urlencode(markers_query(extract_filter(descriptor)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))


def token_from_href(href: Optional[str]) -> Optional[str]:
    if not href:
        return None
    m = ITEM_TOKEN.search(href)
    return m.group(1) if m else None


def _text_of(element, selector: str) -> Optional[str]:
    node = element.select_one(selector)
    if node is None:
        return None
    return node.get_text(" ", strip=True) or None


def parse_search_page(html: str) -> list[RawItem]:
    soup = BeautifulSoup(html, "html.parser")
    out: list[RawItem] = []
    for li in soup.select("#__next ul li"):
        anchor = li.find("a", href=True)
        href = anchor["href"] if anchor else None
        title = _text_of(li, TITLE_SELECTOR)
        # navigation and ad slots share the list markup
        if not href and not title:
            continue
        out.append({
            "id": token_from_href(href),
            "link": href,
            "title": title,
            "price": _text_of(li, PRICE_SELECTOR),
        })
    return out


class HtmlSupplier(HttpSupplier):
    """Scrapes the rendered search results page itself."""

    @property
    def name(self) -> str:
        return "html"

    def _fetch_items(self, descriptor: SourceDescriptor) -> Sequence[RawItem]:
        resp = self._get(search_page_url(descriptor))
        return parse_search_page(resp.text)
