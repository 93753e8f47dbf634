"""
SolvBTC Rate Provider - Main Orchestrator

Publishes the SolvBTC exchange rate (TVL per unit of supply):
1. Check the caller holds the updater role
2. Read the reserve feed
3. Run the validation gates (sanity, divergence, bounds)
4. Commit the new rate, or keep the last good one
5. Emit the matching event

Rejections by a gate are not errors: the caller gets the previous rate back
and an alert event is emitted for monitoring.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .access import AccessController, normalize_address
from .errors import AlreadyInitializedError, InvalidParameterError, NotInitializedError
from .events import EventLog
from .feeds.base import ReserveFeed
from .feeds.registry import FeedRegistry
from .models.event import RateEvent
from .models.snapshot import RateSnapshot
from .store import MemorySnapshotStore, SnapshotStore
from .validation import (
    RATE_PRECISION_FACTOR,
    Verdict,
    is_valid_max_difference_percent,
    require_uint256,
    validate_update,
)

logger = logging.getLogger(__name__)


class SolvBTCRateProvider:
    """
    Rate provider backed by one persisted RateSnapshot.

    Every mutating method takes the caller's address first and runs under a
    single lock: it either writes a complete new snapshot and emits its
    events, or raises before touching anything.
    """

    def __init__(
        self,
        feeds: FeedRegistry,
        store: Optional[SnapshotStore] = None,
        events: Optional[EventLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            feeds: Resolves the configured reserve feed address
            store: Snapshot storage (in-memory if not provided)
            events: Event log (a fresh one if not provided)
            clock: Source of the current Unix time
        """
        self.feeds = feeds
        self.store = store if store is not None else MemorySnapshotStore()
        self.events = events if events is not None else EventLog()
        self.access = AccessController()
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshot: Optional[RateSnapshot] = self.store.load()

    # ============ Lifecycle ============

    @property
    def is_initialized(self) -> bool:
        return self._snapshot is not None

    def initialize(
        self,
        owner: str,
        reserve_feed: str,
        updater: str,
        max_difference_percent: int,
    ) -> RateSnapshot:
        """
        Create the snapshot. Allowed exactly once per store.

        Emits ReserveFeedSet, UpdaterSet and MaxDifferencePercentSet.
        """
        with self._lock:
            if self._snapshot is not None:
                raise AlreadyInitializedError("rate provider is already initialized")

            owner = normalize_address(owner, "owner")
            reserve_feed = normalize_address(reserve_feed, "reserve feed")
            updater = normalize_address(updater, "updater")
            self._check_max_difference_percent(max_difference_percent)

            snapshot = RateSnapshot(
                owner=owner,
                reserve_feed=reserve_feed,
                updater=updater,
                max_difference_percent=max_difference_percent,
            )
            self._commit(snapshot)

            now = self._now()
            self.events.emit(RateEvent.reserve_feed_set(reserve_feed, now))
            self.events.emit(RateEvent.updater_set(updater, now))
            self.events.emit(RateEvent.max_difference_percent_set(max_difference_percent, now))

            logger.info(f"Rate provider initialized (owner {owner})")
            return snapshot

    # ============ Rate Update ============

    def update_rate(self, caller: str, total_supply: int, total_tvl: int) -> int:
        """
        Validate a supply/TVL observation and publish the resulting rate.

        Args:
            caller: Address of the caller, must be the updater
            total_supply: Total supply, 1e18-scaled, must be > 0
            total_tvl: Total value locked, 1e18-scaled

        Returns:
            The new rate if every gate passed, otherwise the last committed rate

        Raises:
            AccessControlError: caller is not the updater
            InvalidParameterError: zero supply or out-of-range amounts
            FeedError: the reserve feed has no usable reading
        """
        with self._lock:
            snapshot = self._require_snapshot()
            self.access.require_updater(snapshot, caller)

            require_uint256(total_supply, "total supply")
            require_uint256(total_tvl, "total TVL")
            if total_supply == 0:
                raise InvalidParameterError("total supply must be positive")

            reading = self._reserve_feed(snapshot).latest_reading()
            result = validate_update(
                reserve=reading.answer,
                total_supply=total_supply,
                tvl=total_tvl,
                max_difference_percent=snapshot.max_difference_percent,
            )

            now = self._now()

            if result.verdict is Verdict.INVALID_RESERVE:
                self.events.emit(RateEvent.invalid_reserve(result.reserve, now))
                return snapshot.last_rate

            if result.verdict is Verdict.INVALID_RESERVE_DIFFERENCE:
                self.events.emit(RateEvent.invalid_reserve_difference(result.reserve, result.tvl, now))
                return snapshot.last_rate

            if result.verdict is Verdict.INVALID_RATE:
                self.events.emit(RateEvent.invalid_rate(result.rate, now))
                return snapshot.last_rate

            # Never move the commit time backwards
            timestamp = max(now, snapshot.last_update_timestamp)
            self._commit(snapshot.with_rate(total_supply, total_tvl, result.rate, timestamp))
            self.events.emit(RateEvent.rate_updated(result.rate, timestamp))
            return result.rate

    # ============ Owner Setters ============

    def set_reserve_feed(self, caller: str, reserve_feed: str) -> None:
        with self._lock:
            snapshot = self._require_snapshot()
            self.access.require_owner(snapshot, caller)
            reserve_feed = normalize_address(reserve_feed, "reserve feed")

            self._commit(snapshot.with_field("reserve_feed", reserve_feed))
            self.events.emit(RateEvent.reserve_feed_set(reserve_feed, self._now()))

    def set_updater(self, caller: str, updater: str) -> None:
        with self._lock:
            snapshot = self._require_snapshot()
            self.access.require_owner(snapshot, caller)
            updater = normalize_address(updater, "updater")

            self._commit(snapshot.with_field("updater", updater))
            self.events.emit(RateEvent.updater_set(updater, self._now()))

    def set_max_difference_percent(self, caller: str, max_difference_percent: int) -> None:
        with self._lock:
            snapshot = self._require_snapshot()
            self.access.require_owner(snapshot, caller)
            self._check_max_difference_percent(max_difference_percent)

            self._commit(snapshot.with_field("max_difference_percent", max_difference_percent))
            self.events.emit(
                RateEvent.max_difference_percent_set(max_difference_percent, self._now())
            )

    # ============ Read-only Accessors ============

    @property
    def snapshot(self) -> RateSnapshot:
        return self._require_snapshot()

    def get_reserve_feed(self) -> str:
        return self._require_snapshot().reserve_feed

    def get_updater(self) -> str:
        return self._require_snapshot().updater

    def get_owner(self) -> str:
        return self._require_snapshot().owner

    def get_max_difference_percent(self) -> int:
        return self._require_snapshot().max_difference_percent

    def get_last_total_supply(self) -> int:
        return self._require_snapshot().last_total_supply

    def get_last_tvl(self) -> int:
        return self._require_snapshot().last_tvl

    def get_last_update_timestamp(self) -> int:
        return self._require_snapshot().last_update_timestamp

    def get_rate(self) -> int:
        return self._require_snapshot().last_rate

    def get_state(self) -> dict:
        """
        Get current provider state for debugging/monitoring.
        """
        snapshot = self._snapshot
        return {
            "is_initialized": snapshot is not None,
            "snapshot": snapshot.to_dict() if snapshot else None,
            "rate": snapshot.last_rate / RATE_PRECISION_FACTOR if snapshot else None,
            "last_event": self.events.last.to_dict() if self.events.last else None,
        }

    # ============ Internals ============

    def _now(self) -> int:
        return int(self._clock())

    def _require_snapshot(self) -> RateSnapshot:
        if self._snapshot is None:
            raise NotInitializedError("rate provider is not initialized")
        return self._snapshot

    def _reserve_feed(self, snapshot: RateSnapshot) -> ReserveFeed:
        return self.feeds.get(snapshot.reserve_feed)

    def _check_max_difference_percent(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidParameterError(f"max difference percent must be an integer, got {value!r}")
        if not is_valid_max_difference_percent(value):
            raise InvalidParameterError(
                f"max difference percent must be in (0, {RATE_PRECISION_FACTOR}], got {value}"
            )

    def _commit(self, snapshot: RateSnapshot) -> None:
        # Persist first; memory only follows a successful write
        self.store.save(snapshot)
        self._snapshot = snapshot
