"""Audit event data models"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class EventType(Enum):
    """Event names, one per decision outcome or configuration change"""
    RESERVE_FEED_SET = "ReserveFeedSet"
    UPDATER_SET = "UpdaterSet"
    MAX_DIFFERENCE_PERCENT_SET = "MaxDifferencePercentSet"
    ALERT_INVALID_RESERVE = "AlertInvalidReserve"
    ALERT_INVALID_RESERVE_DIFFERENCE = "AlertInvalidReserveDifference"
    ALERT_INVALID_RATE = "AlertInvalidRate"
    LATEST_RATE_UPDATED = "LatestRateUpdated"

    @property
    def is_alert(self) -> bool:
        return self.value.startswith("Alert")


@dataclass(frozen=True)
class RateEvent:
    """
    An entry of the append-only audit log.

    Attributes:
        type: What happened
        timestamp: Unix time of the call that emitted the event
        values: Event payload (addresses, reserve, tvl, rate...)
    """
    type: EventType
    timestamp: int
    values: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.type.value

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    @classmethod
    def reserve_feed_set(cls, reserve_feed: str, timestamp: int) -> "RateEvent":
        return cls(EventType.RESERVE_FEED_SET, timestamp, {"reserve_feed": reserve_feed})

    @classmethod
    def updater_set(cls, updater: str, timestamp: int) -> "RateEvent":
        return cls(EventType.UPDATER_SET, timestamp, {"updater": updater})

    @classmethod
    def max_difference_percent_set(cls, max_difference_percent: int, timestamp: int) -> "RateEvent":
        return cls(
            EventType.MAX_DIFFERENCE_PERCENT_SET,
            timestamp,
            {"max_difference_percent": max_difference_percent},
        )

    @classmethod
    def invalid_reserve(cls, reserve: int, timestamp: int) -> "RateEvent":
        return cls(EventType.ALERT_INVALID_RESERVE, timestamp, {"reserve": reserve})

    @classmethod
    def invalid_reserve_difference(cls, reserve: int, tvl: int, timestamp: int) -> "RateEvent":
        return cls(
            EventType.ALERT_INVALID_RESERVE_DIFFERENCE,
            timestamp,
            {"reserve": reserve, "tvl": tvl},
        )

    @classmethod
    def invalid_rate(cls, rate: int, timestamp: int) -> "RateEvent":
        return cls(EventType.ALERT_INVALID_RATE, timestamp, {"rate": rate})

    @classmethod
    def rate_updated(cls, rate: int, timestamp: int) -> "RateEvent":
        return cls(EventType.LATEST_RATE_UPDATED, timestamp, {"rate": rate})

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "event": self.name,
            "timestamp": self.timestamp,
            **{k: str(v) if isinstance(v, int) else v for k, v in self.values.items()},
        }
