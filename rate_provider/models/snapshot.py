"""Rate snapshot data model"""

from dataclasses import dataclass, replace, fields
from typing import Any, Dict

SNAPSHOT_VERSION = "v1.1"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Fields stored as decimal strings so 256-bit values survive JSON round trips
INT_FIELDS = (
    "max_difference_percent",
    "last_update_timestamp",
    "last_total_supply",
    "last_tvl",
    "last_rate",
)


@dataclass(frozen=True)
class RateSnapshot:
    """
    The single persisted record behind the rate provider.

    A snapshot is never mutated. Every accepted change produces a new
    snapshot that replaces the stored one as a whole.

    Attributes:
        owner: Address allowed to change configuration
        reserve_feed: Address of the trusted reserve oracle
        updater: Only address allowed to submit supply/TVL updates
        max_difference_percent: Max relative reserve/TVL divergence (1e18 = 100%)
        last_update_timestamp: Unix time of the last committed update
        last_total_supply: Total supply of the last committed update
        last_tvl: TVL of the last committed update
        last_rate: Last committed rate (1e18 = parity), 0 before any update
        version: Snapshot schema version
    """
    owner: str
    reserve_feed: str
    updater: str
    max_difference_percent: int
    last_update_timestamp: int = 0
    last_total_supply: int = 0
    last_tvl: int = 0
    last_rate: int = 0
    version: str = SNAPSHOT_VERSION

    def with_rate(self, total_supply: int, tvl: int, rate: int, timestamp: int) -> "RateSnapshot":
        """Return a copy with a new committed rate (all four fields together)"""
        return replace(
            self,
            last_total_supply=total_supply,
            last_tvl=tvl,
            last_rate=rate,
            last_update_timestamp=timestamp,
            version=SNAPSHOT_VERSION,
        )

    def with_field(self, name: str, value: Any) -> "RateSnapshot":
        """Return a copy with exactly one configuration field replaced"""
        return replace(self, **{name: value, "version": SNAPSHOT_VERSION})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        d = {}
        for f in fields(self):
            value = getattr(self, f.name)
            d[f.name] = str(value) if f.name in INT_FIELDS else value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RateSnapshot":
        """Build a snapshot from its serialized form"""
        kwargs = {}
        for f in fields(cls):
            if f.name not in d:
                continue
            value = d[f.name]
            kwargs[f.name] = int(value) if f.name in INT_FIELDS else value
        return cls(**kwargs)
