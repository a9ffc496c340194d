from __future__ import annotations

import logging
from typing import Mapping

from yad2_checker.core.errors import TransportFault
from yad2_checker.models import SourceDescriptor
from yad2_checker.suppliers.base import FetchResult, Supplier
from yad2_checker.suppliers.descriptor import HTML, LEGACY, MARKERS
from yad2_checker.suppliers.html import HtmlSupplier
from yad2_checker.suppliers.legacy import LegacyFeedSupplier
from yad2_checker.suppliers.markers import MarkersSupplier

logger = logging.getLogger(__name__)


class SupplierRouter(Supplier):
    """Hands each descriptor to the supplier registered for its kind."""

    def __init__(self, suppliers: Mapping[str, Supplier]):
        self._suppliers = dict(suppliers)

    @property
    def name(self) -> str:
        return "router"

    def fetch(self, descriptor: SourceDescriptor) -> FetchResult:
        supplier = self._suppliers.get(descriptor.kind)
        if supplier is None:
            logger.warning("No supplier for %r sources, skipping %s", descriptor.kind, descriptor.url)
            return FetchResult(error=TransportFault(descriptor.raw, f"unknown source kind {descriptor.kind!r}"))
        return supplier.fetch(descriptor)


def build_router(
    api_url: str | None = None,
    legacy_api_url: str | None = None,
    **http_options,
) -> SupplierRouter:
    """Router with all Yad2 variants; http_options go to every HttpSupplier."""
    return SupplierRouter({
        MARKERS: MarkersSupplier(api_url=api_url, **http_options),
        LEGACY: LegacyFeedSupplier(api_url=legacy_api_url, **http_options),
        HTML: HtmlSupplier(**http_options),
    })
