"""
Data feeds for the rate provider

Provides:
- Reserve readings (proof-of-reserve aggregator, or a static reading)
- Supply/TVL observations for the off-chain updater

Usage:
    from rate_provider.feeds import ChainlinkReserveFeed

    async def main():
        feed = ChainlinkReserveFeed(address, rpc_url)
        await feed.refresh()
        reading = feed.latest_reading()
"""

from .base import DataFeed, FeedError, RateLimiter, ReserveFeed
from .reserve import StaticReserveFeed, ChainlinkReserveFeed, decode_latest_round_data
from .registry import FeedRegistry
from .supply import SupplyTvlFeed, SupplyTvlObservation

__all__ = [
    # Base classes
    "DataFeed",
    "FeedError",
    "RateLimiter",
    "ReserveFeed",
    # Reserve feeds
    "StaticReserveFeed",
    "ChainlinkReserveFeed",
    "decode_latest_round_data",
    "FeedRegistry",
    # Supply/TVL
    "SupplyTvlFeed",
    "SupplyTvlObservation",
]
