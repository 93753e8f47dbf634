"""
SolvBTC Rate Provider - off-chain rate validation for SolvBTC

Publishes the ratio between SolvBTC total value locked and total supply,
cross-checked against a proof-of-reserve oracle and capped to a narrow band
around parity. Inputs that fail a check leave the last good rate in place.
"""

__version__ = "1.1.0"

from .main import SolvBTCRateProvider
from .models.snapshot import RateSnapshot
from .models.reading import ReserveReading
from .models.event import RateEvent, EventType
from .events import EventLog
from .store import SnapshotStore, MemorySnapshotStore, JsonSnapshotStore
from .validation import RATE_PRECISION_FACTOR, MIN_RATE, MAX_RATE
from .errors import (
    RateProviderError,
    InvalidParameterError,
    AccessControlError,
    NotInitializedError,
    AlreadyInitializedError,
    StoreError,
)
from .feeds import FeedError, FeedRegistry, StaticReserveFeed, ChainlinkReserveFeed

__all__ = [
    # Core provider
    "SolvBTCRateProvider",
    "RateSnapshot",
    "ReserveReading",
    "RateEvent",
    "EventType",
    "EventLog",
    # Storage
    "SnapshotStore",
    "MemorySnapshotStore",
    "JsonSnapshotStore",
    # Constants
    "RATE_PRECISION_FACTOR",
    "MIN_RATE",
    "MAX_RATE",
    # Errors
    "RateProviderError",
    "InvalidParameterError",
    "AccessControlError",
    "NotInitializedError",
    "AlreadyInitializedError",
    "StoreError",
    "FeedError",
    # Feeds
    "FeedRegistry",
    "StaticReserveFeed",
    "ChainlinkReserveFeed",
]
