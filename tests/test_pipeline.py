import asyncio
import threading

import pytest
from conftest import S1, S2, FakeNotifier, FakeSupplier, flat

from yad2_checker.core.errors import CycleFailed, StoreFault, TransportFault
from yad2_checker.core.pipeline import Pipeline
from yad2_checker.core.storage import JsonListingStore


@pytest.mark.asyncio
async def test_one_new_listing_notifies_every_subscriber(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat()], S2: []})
    notifier = FakeNotifier()
    pipeline = Pipeline(supplier, store, notifier)

    report = await pipeline.run_cycle(sources, subscribers)

    assert report.sources_visited == 2
    assert report.items_fetched == 1
    assert report.new_listings == 1
    assert report.notifications_attempted == 2
    assert report.notifications_succeeded == 2
    assert sorted(chat for chat, _ in notifier.sent) == ["111", "222"]
    assert "Flat A" in notifier.sent[0][1]
    assert store.exists("1")


@pytest.mark.asyncio
async def test_second_cycle_sends_nothing(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat()], S2: [flat("2", "Flat B", "4000", "https://x/2")]})
    notifier = FakeNotifier()
    pipeline = Pipeline(supplier, store, notifier)

    first = await pipeline.run_cycle(sources, subscribers)
    second = await pipeline.run_cycle(sources, subscribers)

    assert first.new_listings == 2
    assert len(notifier.sent) == 4
    assert second.new_listings == 0
    assert second.notifications_attempted == 0
    assert second.listings_normalized == 2
    assert len(notifier.sent) == 4


@pytest.mark.asyncio
async def test_price_change_is_not_a_new_listing(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat(price="3000")]})
    notifier = FakeNotifier()
    pipeline = Pipeline(supplier, store, notifier)
    await pipeline.run_cycle(sources, subscribers)

    supplier.responses[S1] = [flat(price="2800")]
    report = await pipeline.run_cycle(sources, subscribers)

    assert report.new_listings == 0
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_sentinel_listings_are_neither_claimed_nor_sent(store, sources, subscribers):
    supplier = FakeSupplier({S1: [
        flat("1", title=""),
        flat("2", title="Herzl 5", price=None, link="https://x/2"),
    ]})
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert notifier.sent == []
    assert report.new_listings == 0
    assert report.suppressed == 2
    assert not store.exists("1") and not store.exists("2")


@pytest.mark.asyncio
async def test_incomplete_listing_is_announced_once_it_is_complete(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat("5", title="")]})
    notifier = FakeNotifier()
    pipeline = Pipeline(supplier, store, notifier)
    await pipeline.run_cycle(sources, subscribers)
    assert notifier.sent == []

    supplier.responses[S1] = [flat("5", title="Herzl 5")]
    report = await pipeline.run_cycle(sources, subscribers)

    assert report.new_listings == 1
    assert sorted(chat for chat, _ in notifier.sent) == ["111", "222"]


@pytest.mark.asyncio
async def test_malformed_link_does_not_abort_the_batch(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat("9", link="http://[oops"), flat(), {"link": "//[oops"}]})
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert report.new_listings == 2
    assert report.items_skipped == 1
    assert store.exists("9") and store.exists("1")
    assert len(notifier.sent) == 4


class ThreadRecordingStore(JsonListingStore):
    def __init__(self):
        super().__init__()
        self.claim_threads = []

    def try_claim(self, listing):
        self.claim_threads.append(threading.get_ident())
        return super().try_claim(listing)


@pytest.mark.asyncio
async def test_claims_run_off_the_event_loop(sources, subscribers):
    store = ThreadRecordingStore()
    pipeline = Pipeline(FakeSupplier({S1: [flat()]}), store, FakeNotifier())

    await pipeline.run_cycle(sources, subscribers)

    assert store.claim_threads
    assert threading.get_ident() not in store.claim_threads


@pytest.mark.asyncio
async def test_failing_source_does_not_stop_the_others(store, sources, subscribers):
    supplier = FakeSupplier({
        S1: TransportFault(S1, "timeout"),
        S2: [flat("7", "Flat C", "5000", "https://x/7")],
    })
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert report.sources_visited == 2
    assert report.sources_failed == 1
    assert report.failed_sources == [S1]
    assert report.new_listings == 1
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_items_without_identity_are_only_counted_as_skipped(store, sources, subscribers):
    supplier = FakeSupplier({S1: [{"title": "Ghost", "price": "1"}, "garbage", flat()]})
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert report.items_fetched == 3
    assert report.items_skipped == 2
    assert report.listings_normalized == 1
    assert report.new_listings == 1
    assert store.count() == 1


@pytest.mark.asyncio
async def test_link_is_the_identity_when_id_is_missing(store, sources, subscribers):
    link = "https://www.yad2.co.il/realestate/item/tel-aviv/zz9"
    supplier = FakeSupplier({
        S1: [flat(None, "Flat D", "6000", link)],
        S2: [flat("", "Flat D again", "6100", link)],
    })
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert report.new_listings == 1
    assert store.exists(link)
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_one_failed_delivery_does_not_block_the_rest(store, sources, subscribers):
    supplier = FakeSupplier({S1: [flat(), flat("2", "Flat B", "4000", "https://x/2")]})
    notifier = FakeNotifier(fail_for={"111"})

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    assert report.notifications_attempted == 4
    assert report.notifications_failed == 2
    assert report.notifications_succeeded == 2
    assert [chat for chat, _ in notifier.sent] == ["222", "222"]


class ExplodingNotifier(FakeNotifier):
    async def deliver(self, subscriber_id, text):
        if subscriber_id == "111":
            raise RuntimeError("boom")
        return await super().deliver(subscriber_id, text)


@pytest.mark.asyncio
async def test_notifier_exception_counts_as_failed_delivery(store, sources, subscribers):
    notifier = ExplodingNotifier()
    pipeline = Pipeline(FakeSupplier({S1: [flat()]}), store, notifier)

    report = await pipeline.run_cycle(sources, subscribers)

    assert report.notifications_failed == 1
    assert notifier.sent[0][0] == "222"


class BrokenStore(JsonListingStore):
    def __init__(self, fail_after):
        super().__init__()
        self.fail_after = fail_after

    def try_claim(self, listing):
        if self.count() >= self.fail_after:
            raise StoreFault("disk full")
        return super().try_claim(listing)


@pytest.mark.asyncio
async def test_store_failure_aborts_cycle_and_keeps_earlier_work(sources, subscribers):
    supplier = FakeSupplier({
        S1: [flat(), flat("2", "Flat B", "4000", "https://x/2")],
        S2: [flat("3", "Flat C", "5000", "https://x/3")],
    })
    notifier = FakeNotifier()
    store = BrokenStore(fail_after=1)

    with pytest.raises(CycleFailed) as exc_info:
        await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers)

    report = exc_info.value.report
    assert isinstance(exc_info.value.__cause__, StoreFault)
    assert report.new_listings == 1
    assert len(notifier.sent) == 2
    assert supplier.calls == [S1]


@pytest.mark.asyncio
async def test_stop_event_ends_cycle_between_sources(store, sources, subscribers):
    stop = asyncio.Event()

    class StoppingSupplier(FakeSupplier):
        def fetch(self, descriptor):
            result = super().fetch(descriptor)
            stop.set()
            return result

    supplier = StoppingSupplier({S1: [flat()], S2: [flat("2", "Flat B", "4000", "https://x/2")]})
    notifier = FakeNotifier()

    report = await Pipeline(supplier, store, notifier).run_cycle(sources, subscribers, stop)

    assert report.cancelled
    assert report.sources_visited == 1
    assert report.new_listings == 1
    assert supplier.calls == [S1]


@pytest.mark.asyncio
async def test_no_subscribers_still_records_listings(store, sources):
    notifier = FakeNotifier()
    report = await Pipeline(FakeSupplier({S1: [flat()]}), store, notifier).run_cycle(sources, [])

    assert report.new_listings == 1
    assert report.notifications_attempted == 0
    assert store.exists("1")

