from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import requests

from yad2_checker.core.errors import TransportFault
from yad2_checker.models import RawItem, SourceDescriptor

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "he-IL",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
}

DEFAULT_TIMEOUT = 15
DEFAULT_DELAY = 1.0


@dataclass(frozen=True)
class FetchResult:
    items: tuple[RawItem, ...] = ()
    error: Optional[TransportFault] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Supplier(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        """Short unique supplier name, e.g. 'markers'."""

    @abstractmethod
    def fetch(self, descriptor: SourceDescriptor) -> FetchResult:
        """Return raw items for the descriptor, newest first.

        Must not raise: failures come back as FetchResult.error.
        """


class HttpSupplier(Supplier):
    """Supplier talking to Yad2 over HTTP.

    Subclasses implement `_fetch_items`, which may raise anything requests or
    payload parsing raises; `fetch` turns that into a TransportFault.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        delay: float = DEFAULT_DELAY,
        proxy: str | None = None,
    ):
        # Reuse a session for keep-alive + connection pooling
        self._session = session or requests.Session()
        self._session.headers.update(HEADERS)
        if proxy:
            self._session.proxies.update({"http": proxy, "https": proxy})
        self.timeout = timeout
        self.delay = delay

    @abstractmethod
    def _fetch_items(self, descriptor: SourceDescriptor) -> Sequence[RawItem]:
        ...

    def _get(self, url: str, params: Any = None) -> requests.Response:
        # upstream rate limits
        if self.delay:
            time.sleep(self.delay)
        resp = self._session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def fetch(self, descriptor: SourceDescriptor) -> FetchResult:
        try:
            items = self._fetch_items(descriptor)
        except requests.RequestException as e:
            return self._fault(descriptor, f"request failed: {e}")
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
            return self._fault(descriptor, f"unexpected response: {e!r}")
        logger.info("[%s] %d items from %s", self.name, len(items), descriptor.url)
        return FetchResult(items=tuple(items))

    def _fault(self, descriptor: SourceDescriptor, message: str) -> FetchResult:
        logger.warning("[%s] %s: %s", self.name, descriptor.url, message)
        return FetchResult(error=TransportFault(descriptor.raw, message))
