"""Data models for the rate provider"""

from .snapshot import RateSnapshot, SNAPSHOT_VERSION, ZERO_ADDRESS
from .reading import ReserveReading
from .event import RateEvent, EventType

__all__ = [
    "RateSnapshot",
    "SNAPSHOT_VERSION",
    "ZERO_ADDRESS",
    "ReserveReading",
    "RateEvent",
    "EventType",
]
