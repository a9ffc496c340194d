import logging

from yad2_checker.core.storage import ListingStore
from yad2_checker.models import Listing

logger = logging.getLogger(__name__)


def identity_key(listing: Listing) -> str:
    return listing.key


def is_notifiable(listing: Listing) -> bool:
    # sentinel fields mean the extraction went wrong, not that nothing changed
    return not listing.has_sentinel


class Deduplicator:
    """Decides whether a listing is new, using the store as the only source of truth.

    A listing is identified by its key alone: a known listing whose price or
    title changed upstream is still not new.
    """

    def __init__(self, store: ListingStore):
        self.store = store

    def is_new(self, listing: Listing) -> bool:
        # same rule as the claim: a known link under another key is not new
        return not (self.store.exists(identity_key(listing)) or self.store.link_exists(listing.link))

    def mark_seen(self, listing: Listing) -> None:
        self.store.try_claim(listing)

    def try_claim(self, listing: Listing) -> bool:
        claimed = self.store.try_claim(listing)
        if claimed:
            logger.info("New listing %s: %s", identity_key(listing), listing.title)
        else:
            logger.debug("Already seen: %s", identity_key(listing))
        return claimed
