import json

import pytest
import requests

from yad2_checker.bot.telegram_bot import Notifier
from yad2_checker.core.errors import TransportFault
from yad2_checker.core.sqlite_store import SqliteListingStore
from yad2_checker.models import Subscriber
from yad2_checker.suppliers.base import FetchResult, Supplier
from yad2_checker.suppliers.descriptor import parse_descriptor

S1 = "https://www.yad2.co.il/realestate/rent?city=5000&minRooms=3"
S2 = "https://www.yad2.co.il/realestate/rent?city=6200&maxPrice=7000"


class FakeSupplier(Supplier):
    """Serves canned items (or a TransportFault) per configured source string."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    @property
    def name(self) -> str:
        return "fake"

    def fetch(self, descriptor):
        self.calls.append(descriptor.raw)
        value = self.responses.get(descriptor.raw, [])
        if isinstance(value, TransportFault):
            return FetchResult(error=value)
        return FetchResult(items=tuple(value))


class FakeNotifier(Notifier):
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    async def deliver(self, subscriber_id, text):
        if subscriber_id in self.fail_for:
            return False
        self.sent.append((subscriber_id, text))
        return True


class FakeSession(requests.Session):
    """requests.Session that answers every GET with one canned response."""

    def __init__(self, payload=None, text="", status=200, exc=None):
        super().__init__()
        self.payload = payload
        self.text = text
        self.status = status
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, **kwargs):
        self.calls.append({"url": url, "params": params, **kwargs})
        if self.exc is not None:
            raise self.exc
        resp = requests.Response()
        resp.status_code = self.status
        resp.url = url
        resp.encoding = "utf-8"
        body = json.dumps(self.payload) if self.payload is not None else self.text
        resp._content = body.encode("utf-8")
        return resp


@pytest.fixture
def store(tmp_path):
    s = SqliteListingStore(str(tmp_path / "listings.db"))
    yield s
    s.close()


@pytest.fixture
def subscribers():
    return (
        Subscriber(id="111", first_name="Noa"),
        Subscriber(id="222"),
    )


@pytest.fixture
def sources():
    return [parse_descriptor(S1), parse_descriptor(S2)]


def flat(listing_id="1", title="Flat A", price="3000", link="https://x/1"):
    return {"id": listing_id, "title": title, "price": price, "link": link}
