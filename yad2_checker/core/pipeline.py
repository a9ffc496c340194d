"""One polling cycle: fetch every source, claim what is new, tell subscribers.

The store's claim is the only place where "new" is decided. Everything
after a successful claim is fire-and-count: a failed delivery is not retried
and does not un-claim the listing, so a subscriber may miss a listing but
never gets it twice.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional, Sequence

from yad2_checker.bot.telegram_bot import Notifier
from yad2_checker.core.dedup import Deduplicator, is_notifiable
from yad2_checker.core.errors import CycleFailed, StoreFault
from yad2_checker.core.normalizer import BatchNormalizer
from yad2_checker.core.storage import ListingStore
from yad2_checker.models import CycleReport, Listing, RawItem, SourceDescriptor, Subscriber
from yad2_checker.suppliers.base import Supplier
from yad2_checker.utils.formatting import format_message

logger = logging.getLogger(__name__)


class Pipeline:
    def __init__(
        self,
        supplier: Supplier,
        store: ListingStore,
        notifier: Notifier,
        formatter: Callable[[Listing], str] = format_message,
    ):
        self.supplier = supplier
        self.dedup = Deduplicator(store)
        self.notifier = notifier
        self.formatter = formatter

    async def run_cycle(
        self,
        sources: Iterable[SourceDescriptor],
        subscribers: Sequence[Subscriber],
        stop: Optional[asyncio.Event] = None,
    ) -> CycleReport:
        """Visit every source once.

        Raises CycleFailed when the store fails; listings claimed and sent
        before that stay claimed.
        """
        report = CycleReport()
        for descriptor in sources:
            if stop is not None and stop.is_set():
                logger.info("Stop requested, leaving cycle before %s", descriptor.url)
                report.cancelled = True
                break

            report.sources_visited += 1
            # suppliers block (requests + rate-limit sleep)
            result = await asyncio.to_thread(self.supplier.fetch, descriptor)
            if not result.ok:
                report.sources_failed += 1
                report.failed_sources.append(descriptor.raw)
                logger.warning("Source skipped this cycle: %s", result.error)
                continue

            report.items_fetched += len(result.items)
            try:
                await self._process_batch(result.items, subscribers, report)
            except StoreFault as e:
                logger.error("Store failure, aborting cycle: %s", e)
                raise CycleFailed(report, f"store failure: {e}") from e

        logger.info("Cycle done: %s", report.summary())
        return report

    async def _process_batch(
        self,
        items: Sequence[RawItem],
        subscribers: Sequence[Subscriber],
        report: CycleReport,
    ) -> None:
        normalizer = BatchNormalizer()
        try:
            for listing in normalizer(items):
                report.listings_normalized += 1
                if not is_notifiable(listing):
                    # left unclaimed so a complete version later still counts as new
                    report.suppressed += 1
                    logger.debug("Not notifying %s: incomplete listing (%s / %s)",
                                 listing.key, listing.title, listing.price)
                    continue
                if not await asyncio.to_thread(self.dedup.try_claim, listing):
                    continue
                report.new_listings += 1
                await self._fan_out(listing, subscribers, report)
        finally:
            report.items_skipped += normalizer.skipped

    async def _fan_out(self, listing: Listing, subscribers: Sequence[Subscriber], report: CycleReport) -> None:
        text = self.formatter(listing)
        outcomes = await asyncio.gather(
            *(self._deliver(sub, text) for sub in subscribers)
        )
        report.notifications_attempted += len(outcomes)
        report.notifications_succeeded += sum(outcomes)
        report.notifications_failed += len(outcomes) - sum(outcomes)

    async def _deliver(self, subscriber: Subscriber, text: str) -> bool:
        try:
            ok = await self.notifier.deliver(subscriber.id, text)
        except Exception:
            # a notifier is not supposed to raise; keep the other subscribers going
            logger.exception("Notifier raised for %s", subscriber.display_name)
            return False
        if not ok:
            logger.warning("Delivery to %s failed", subscriber.display_name)
        return bool(ok)
