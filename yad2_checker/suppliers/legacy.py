from __future__ import annotations

from typing import Sequence

from yad2_checker.models import RawItem, SourceDescriptor
from yad2_checker.suppliers.base import HttpSupplier
from yad2_checker.suppliers.descriptor import deal_type, extract_filter, legacy_query

API_URL = "https://gw.yad2.co.il/feed-search-legacy/realestate/{deal}"


class LegacyFeedSupplier(HttpSupplier):
    """Older Yad2 feed API.

    Filters go as `rooms=3-4` / `price=-1-6000`, and the feed mixes listing
    entries with banners and promoted blocks, so only `type == "ad"` counts.
    """

    def __init__(self, api_url: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url or API_URL

    @property
    def name(self) -> str:
        return "legacy"

    def _fetch_items(self, descriptor: SourceDescriptor) -> Sequence[RawItem]:
        url = self.api_url.format(deal=deal_type(descriptor))
        params = legacy_query(extract_filter(descriptor))
        data = self._get(url, params=params).json()

        feed = (data.get("data") or {}).get("feed") or {}
        results = feed.get("feed_items", []) or []

        out: list[RawItem] = []
        for it in results:
            if not isinstance(it, dict) or it.get("type") != "ad":
                continue
            token = it.get("link_token")
            out.append({
                "id": it.get("id") or token,
                # relative; the normalizer resolves it against the site origin
                "link": f"/item/{token}" if token else None,
                "title": it.get("title_1"),
                "price": it.get("price"),
            })
        return out
