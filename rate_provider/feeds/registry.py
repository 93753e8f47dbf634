"""Address to reserve feed lookup"""

import logging
from typing import Callable, Dict, Iterable, Optional

from eth_utils import is_address, to_checksum_address

from .base import FeedError, ReserveFeed

logger = logging.getLogger(__name__)

FeedFactory = Callable[[str], ReserveFeed]


class FeedRegistry:
    """
    Resolves the configured reserve feed address to a feed object.

    Known feeds are registered up front. An optional factory builds feeds
    for addresses seen for the first time (e.g. after set_reserve_feed).
    """

    def __init__(
        self,
        feeds: Optional[Iterable[ReserveFeed]] = None,
        factory: Optional[FeedFactory] = None,
    ):
        self._feeds: Dict[str, ReserveFeed] = {}
        self._factory = factory
        for feed in feeds or []:
            self.register(feed)

    def __contains__(self, address: str) -> bool:
        return is_address(address) and to_checksum_address(address) in self._feeds

    def __len__(self) -> int:
        return len(self._feeds)

    def register(self, feed: ReserveFeed) -> None:
        self._feeds[to_checksum_address(feed.address)] = feed

    def get(self, address: str) -> ReserveFeed:
        if not is_address(address):
            raise FeedError(f"invalid reserve feed address: {address!r}")
        key = to_checksum_address(address)

        feed = self._feeds.get(key)
        if feed is None:
            if self._factory is None:
                raise FeedError(f"no reserve feed registered for {key}")
            logger.info(f"Creating reserve feed for {key}")
            feed = self._factory(key)
            self._feeds[key] = feed
        return feed

    def feeds(self):
        return list(self._feeds.values())
