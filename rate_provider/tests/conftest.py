"""Shared fixtures for rate provider tests"""

import pytest

from rate_provider.events import EventLog
from rate_provider.feeds import FeedRegistry, StaticReserveFeed
from rate_provider.main import SolvBTCRateProvider
from rate_provider.store import MemorySnapshotStore

OWNER = "0x" + "11" * 20
UPDATER = "0x" + "22" * 20
RESERVE_FEED = "0x" + "33" * 20
OTHER_FEED = "0x" + "44" * 20
STRANGER = "0x" + "55" * 20

RESERVE = 4690352947360884307563
THREE_PERCENT = 3 * 10**16
FIVE_PERCENT = 5 * 10**16


class FakeClock:
    """Settable time source"""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reserve_feed():
    return StaticReserveFeed(RESERVE_FEED, answer=RESERVE)


@pytest.fixture
def provider(reserve_feed, clock):
    provider = SolvBTCRateProvider(
        feeds=FeedRegistry([reserve_feed]),
        store=MemorySnapshotStore(),
        events=EventLog(),
        clock=clock,
    )
    provider.initialize(OWNER, RESERVE_FEED, UPDATER, THREE_PERCENT)
    provider.events.clear()
    return provider
