from __future__ import annotations

from typing import Any, Sequence

from yad2_checker.core.normalizer import ITEM_URL
from yad2_checker.models import RawItem, SourceDescriptor
from yad2_checker.suppliers.base import HttpSupplier
from yad2_checker.suppliers.descriptor import deal_type, extract_filter, markers_query

API_URL = "https://gw.yad2.co.il/realestate-feed/{deal}/map"


def _marker_title(marker: dict[str, Any]) -> str | None:
    address = marker.get("address") or {}
    street = (address.get("street") or {}).get("text")
    if not street:
        return None
    number = (address.get("house") or {}).get("number") or ""
    return f"{street} {number}".strip()


class MarkersSupplier(HttpSupplier):
    """Current Yad2 map API: one marker per listing, keyed by token."""

    def __init__(self, api_url: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url or API_URL

    @property
    def name(self) -> str:
        return "markers"

    def _fetch_items(self, descriptor: SourceDescriptor) -> Sequence[RawItem]:
        url = self.api_url.format(deal=deal_type(descriptor))
        params = markers_query(extract_filter(descriptor))
        data = self._get(url, params=params).json()

        markers = (data.get("data") or {}).get("markers") or []
        out: list[RawItem] = []
        tokens: set[str] = set()
        for it in markers:
            token = it.get("token")
            # same token can come twice (several markers per building)
            if token and token in tokens:
                continue
            if token:
                tokens.add(token)
            out.append({
                "id": token,
                "link": ITEM_URL.format(id=token) if token else None,
                "title": _marker_title(it),
                "price": it.get("price") or None,
            })
        return out
