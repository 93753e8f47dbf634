"""Tests for SolvBTCRateProvider"""

import pytest
from eth_utils import to_checksum_address

from rate_provider.errors import (
    AccessControlError,
    AlreadyInitializedError,
    InvalidParameterError,
    NotInitializedError,
    StoreError,
)
from rate_provider.events import EventLog
from rate_provider.feeds import FeedError, FeedRegistry, StaticReserveFeed
from rate_provider.main import SolvBTCRateProvider
from rate_provider.models import EventType, RateSnapshot
from rate_provider.store import MemorySnapshotStore
from rate_provider.validation import MAX_RATE, MIN_RATE, RATE_PRECISION_FACTOR

from conftest import (
    FIVE_PERCENT,
    OTHER_FEED,
    OWNER,
    RESERVE,
    RESERVE_FEED,
    STRANGER,
    THREE_PERCENT,
    UPDATER,
    FakeClock,
)

E18 = RATE_PRECISION_FACTOR


class FailingStore(MemorySnapshotStore):
    """Accepts the first save, fails afterwards"""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, snapshot: RateSnapshot) -> None:
        if self.fail:
            raise StoreError("disk full")
        super().save(snapshot)


class TestInitialize:
    def test_initial_snapshot(self, provider):
        snapshot = provider.snapshot
        assert snapshot.owner == to_checksum_address(OWNER)
        assert snapshot.reserve_feed == to_checksum_address(RESERVE_FEED)
        assert snapshot.updater == to_checksum_address(UPDATER)
        assert snapshot.max_difference_percent == THREE_PERCENT
        assert snapshot.last_rate == 0
        assert snapshot.last_total_supply == 0
        assert snapshot.last_tvl == 0
        assert snapshot.last_update_timestamp == 0

    def test_emits_configuration_events(self, reserve_feed, clock):
        provider = SolvBTCRateProvider(FeedRegistry([reserve_feed]), clock=clock)
        provider.initialize(OWNER, RESERVE_FEED, UPDATER, FIVE_PERCENT)

        names = [e.type for e in provider.events]
        assert names == [
            EventType.RESERVE_FEED_SET,
            EventType.UPDATER_SET,
            EventType.MAX_DIFFERENCE_PERCENT_SET,
        ]

    def test_only_once(self, provider):
        with pytest.raises(AlreadyInitializedError):
            provider.initialize(OWNER, RESERVE_FEED, UPDATER, THREE_PERCENT)

    @pytest.mark.parametrize("kwargs", [
        {"reserve_feed": "0x" + "00" * 20},
        {"updater": "0x" + "00" * 20},
        {"owner": "not-an-address"},
        {"max_difference_percent": 0},
        {"max_difference_percent": E18 + 1},
    ])
    def test_rejects_invalid_values(self, reserve_feed, kwargs):
        provider = SolvBTCRateProvider(FeedRegistry([reserve_feed]))
        args = {
            "owner": OWNER,
            "reserve_feed": RESERVE_FEED,
            "updater": UPDATER,
            "max_difference_percent": THREE_PERCENT,
        }
        args.update(kwargs)
        with pytest.raises(InvalidParameterError):
            provider.initialize(**args)
        assert not provider.is_initialized
        assert len(provider.events) == 0

    def test_uninitialized_provider(self, reserve_feed):
        provider = SolvBTCRateProvider(FeedRegistry([reserve_feed]))
        with pytest.raises(NotInitializedError):
            provider.get_rate()
        with pytest.raises(NotInitializedError):
            provider.update_rate(UPDATER, E18, E18)

    def test_loads_existing_snapshot(self, reserve_feed):
        snapshot = RateSnapshot(
            owner=to_checksum_address(OWNER),
            reserve_feed=to_checksum_address(RESERVE_FEED),
            updater=to_checksum_address(UPDATER),
            max_difference_percent=THREE_PERCENT,
            last_rate=E18,
        )
        provider = SolvBTCRateProvider(
            FeedRegistry([reserve_feed]), store=MemorySnapshotStore(snapshot)
        )
        assert provider.is_initialized
        assert provider.get_rate() == E18


class TestUpdateRate:
    def test_parity_commit(self, provider, clock):
        rate = provider.update_rate(UPDATER, RESERVE, RESERVE)

        assert rate == E18
        assert provider.get_rate() == E18
        assert provider.get_last_total_supply() == RESERVE
        assert provider.get_last_tvl() == RESERVE
        assert provider.get_last_update_timestamp() == clock.now

        event = provider.events.last
        assert event.type is EventType.LATEST_RATE_UPDATED
        assert event["rate"] == E18
        assert event.timestamp == clock.now

    def test_rate_is_truncated_quotient(self, provider):
        supply = RESERVE - 12345
        rate = provider.update_rate(UPDATER, supply, RESERVE)
        assert rate == RESERVE * E18 // supply
        assert MIN_RATE <= rate <= MAX_RATE

    def test_tvl_four_percent_above_reserve_rejected(self, provider):
        tvl = RESERVE * 104 // 100
        before = provider.snapshot

        rate = provider.update_rate(UPDATER, tvl, tvl)

        assert rate == 0
        assert provider.snapshot == before
        event = provider.events.last
        assert event.type is EventType.ALERT_INVALID_RESERVE_DIFFERENCE
        assert event["reserve"] == RESERVE
        assert event["tvl"] == tvl

    def test_rejection_returns_previous_rate(self, provider, clock):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        before = provider.snapshot
        clock.advance(60)

        tvl = RESERVE * 104 // 100
        assert provider.update_rate(UPDATER, tvl, tvl) == E18
        assert provider.snapshot == before

    def test_negative_reserve(self, provider, reserve_feed):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        before = provider.snapshot
        reserve_feed.set_answer(-5)

        assert provider.update_rate(UPDATER, RESERVE, RESERVE) == E18
        assert provider.snapshot == before
        event = provider.events.last
        assert event.type is EventType.ALERT_INVALID_RESERVE
        assert event["reserve"] == -5

    def test_rate_out_of_bounds(self, provider, reserve_feed):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        before = provider.snapshot

        # tvl matches reserve, but supply shrank 2%
        supply = RESERVE * 98 // 100
        assert provider.update_rate(UPDATER, supply, RESERVE) == E18
        assert provider.snapshot == before

        event = provider.events.last
        assert event.type is EventType.ALERT_INVALID_RATE
        assert event["rate"] == RESERVE * E18 // supply

    def test_zero_supply_is_hard_failure(self, provider):
        before = provider.snapshot
        with pytest.raises(InvalidParameterError):
            provider.update_rate(UPDATER, 0, RESERVE)
        assert provider.snapshot == before
        assert len(provider.events) == 0

    def test_negative_amounts_are_hard_failures(self, provider):
        with pytest.raises(InvalidParameterError):
            provider.update_rate(UPDATER, -1, RESERVE)
        with pytest.raises(InvalidParameterError):
            provider.update_rate(UPDATER, RESERVE, -1)
        assert len(provider.events) == 0

    def test_zero_tvl_rejected_by_divergence(self, provider):
        assert provider.update_rate(UPDATER, RESERVE, 0) == 0
        assert provider.events.last.type is EventType.ALERT_INVALID_RESERVE_DIFFERENCE

    def test_zero_tvl_with_full_tolerance_rejected_by_bounds(self, provider):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        provider.set_max_difference_percent(OWNER, E18)

        assert provider.update_rate(UPDATER, RESERVE, 0) == E18
        event = provider.events.last
        assert event.type is EventType.ALERT_INVALID_RATE
        assert event["rate"] == 0
        assert provider.get_last_tvl() == RESERVE

    def test_divergence_boundary(self, provider, reserve_feed):
        reserve_feed.set_answer(100 * E18)

        # exactly 3% apart
        assert provider.update_rate(UPDATER, 97 * E18, 97 * E18) == E18

        provider.set_max_difference_percent(OWNER, THREE_PERCENT - 1)
        assert provider.update_rate(UPDATER, 97 * E18, 97 * E18) == E18
        assert provider.events.last.type is EventType.ALERT_INVALID_RESERVE_DIFFERENCE

    def test_divergence_symmetry(self, provider, reserve_feed):
        reserve_feed.set_answer(97 * E18)
        assert provider.update_rate(UPDATER, 100 * E18, 100 * E18) == E18
        assert provider.events.last.type is EventType.LATEST_RATE_UPDATED

    def test_non_updater_rejected(self, provider):
        before = provider.snapshot
        for caller in (OWNER, STRANGER, "", None):
            with pytest.raises(AccessControlError):
                provider.update_rate(caller, RESERVE, RESERVE)
        assert provider.snapshot == before
        assert len(provider.events) == 0

    def test_feed_failure_is_hard_failure(self, provider):
        provider.feeds = FeedRegistry([StaticReserveFeed(RESERVE_FEED)])
        with pytest.raises(FeedError):
            provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert len(provider.events) == 0

    def test_store_failure_leaves_state_and_events_untouched(self, reserve_feed, clock):
        store = FailingStore()
        provider = SolvBTCRateProvider(FeedRegistry([reserve_feed]), store=store, clock=clock)
        provider.initialize(OWNER, RESERVE_FEED, UPDATER, THREE_PERCENT)
        events_before = len(provider.events)
        before = provider.snapshot

        store.fail = True
        with pytest.raises(StoreError):
            provider.update_rate(UPDATER, RESERVE, RESERVE)

        assert provider.snapshot == before
        assert store.load() == before
        assert len(provider.events) == events_before

    def test_timestamp_moves_only_on_commit(self, provider, clock):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        first = provider.get_last_update_timestamp()

        clock.advance(100)
        tvl = RESERVE * 104 // 100
        provider.update_rate(UPDATER, tvl, tvl)
        assert provider.get_last_update_timestamp() == first

        clock.advance(100)
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert provider.get_last_update_timestamp() == first + 200

    def test_timestamp_never_decreases(self, provider, clock):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        first = provider.get_last_update_timestamp()

        clock.now = first - 1000
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert provider.get_last_update_timestamp() == first

    def test_one_event_per_update(self, provider, reserve_feed):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        reserve_feed.set_answer(-1)
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert len(provider.events) == 2


class TestSetters:
    def test_set_reserve_feed(self, provider, clock):
        provider.feeds.register(StaticReserveFeed(OTHER_FEED, answer=RESERVE))
        before = provider.snapshot

        provider.set_reserve_feed(OWNER, OTHER_FEED)

        assert provider.get_reserve_feed() == to_checksum_address(OTHER_FEED)
        assert provider.snapshot.updater == before.updater
        assert provider.snapshot.max_difference_percent == before.max_difference_percent
        event = provider.events.last
        assert event.type is EventType.RESERVE_FEED_SET
        assert event["reserve_feed"] == to_checksum_address(OTHER_FEED)
        assert event.timestamp == clock.now

    def test_update_reads_new_feed(self, provider):
        provider.feeds.register(StaticReserveFeed(OTHER_FEED, answer=-1))
        provider.set_reserve_feed(OWNER, OTHER_FEED)

        provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert provider.events.last.type is EventType.ALERT_INVALID_RESERVE

    def test_set_updater(self, provider):
        provider.set_updater(OWNER, STRANGER)
        assert provider.get_updater() == to_checksum_address(STRANGER)
        assert provider.events.last.type is EventType.UPDATER_SET

        with pytest.raises(AccessControlError):
            provider.update_rate(UPDATER, RESERVE, RESERVE)
        assert provider.update_rate(STRANGER, RESERVE, RESERVE) == E18

    def test_set_max_difference_percent(self, provider):
        provider.set_max_difference_percent(OWNER, FIVE_PERCENT)
        assert provider.get_max_difference_percent() == FIVE_PERCENT
        event = provider.events.last
        assert event.type is EventType.MAX_DIFFERENCE_PERCENT_SET
        assert event["max_difference_percent"] == FIVE_PERCENT

    @pytest.mark.parametrize("value", [0, E18 + 1, -1, "1"])
    def test_invalid_max_difference_percent(self, provider, value):
        before = provider.snapshot
        with pytest.raises(InvalidParameterError):
            provider.set_max_difference_percent(OWNER, value)
        assert provider.snapshot == before
        assert len(provider.events) == 0

    def test_full_max_difference_percent_allowed(self, provider):
        provider.set_max_difference_percent(OWNER, E18)
        assert provider.get_max_difference_percent() == E18

    @pytest.mark.parametrize("address", ["0x" + "00" * 20, "", "0x1234"])
    def test_invalid_addresses(self, provider, address):
        before = provider.snapshot
        with pytest.raises(InvalidParameterError):
            provider.set_reserve_feed(OWNER, address)
        with pytest.raises(InvalidParameterError):
            provider.set_updater(OWNER, address)
        assert provider.snapshot == before
        assert len(provider.events) == 0

    def test_non_owner_rejected(self, provider):
        before = provider.snapshot
        with pytest.raises(AccessControlError):
            provider.set_reserve_feed(UPDATER, OTHER_FEED)
        with pytest.raises(AccessControlError):
            provider.set_updater(STRANGER, STRANGER)
        with pytest.raises(AccessControlError):
            provider.set_max_difference_percent(UPDATER, FIVE_PERCENT)
        assert provider.snapshot == before
        assert len(provider.events) == 0

    def test_setters_do_not_touch_rate(self, provider):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        committed = provider.snapshot

        provider.set_max_difference_percent(OWNER, FIVE_PERCENT)
        provider.set_updater(OWNER, STRANGER)

        snapshot = provider.snapshot
        assert snapshot.last_rate == committed.last_rate
        assert snapshot.last_tvl == committed.last_tvl
        assert snapshot.last_total_supply == committed.last_total_supply
        assert snapshot.last_update_timestamp == committed.last_update_timestamp


class TestEventsAndState:
    def test_subscriber_sees_alerts(self, provider):
        seen = []
        provider.events.subscribe(seen.append)

        tvl = RESERVE * 104 // 100
        provider.update_rate(UPDATER, tvl, tvl)

        assert [e.type for e in seen] == [EventType.ALERT_INVALID_RESERVE_DIFFERENCE]
        assert seen[0].type.is_alert

    def test_failing_subscriber_does_not_undo_commit(self, provider):
        def broken(event):
            raise RuntimeError("monitoring down")

        provider.events.subscribe(broken)
        assert provider.update_rate(UPDATER, RESERVE, RESERVE) == E18
        assert provider.get_rate() == E18

    def test_get_state(self, provider):
        provider.update_rate(UPDATER, RESERVE, RESERVE)
        state = provider.get_state()
        assert state["is_initialized"] is True
        assert state["rate"] == 1.0
        assert state["snapshot"]["last_rate"] == str(E18)
        assert state["last_event"]["event"] == "LatestRateUpdated"

    def test_event_log_limit(self):
        from rate_provider.models import RateEvent

        log = EventLog(max_events=2)
        for i in range(3):
            log.emit(RateEvent.rate_updated(E18, i))
        assert [e.timestamp for e in log] == [1, 2]

    def test_event_log_bounded_by_default(self):
        from rate_provider.events import DEFAULT_MAX_EVENTS
        from rate_provider.models import RateEvent

        log = EventLog()
        assert log.max_events == DEFAULT_MAX_EVENTS
        for i in range(DEFAULT_MAX_EVENTS + 5):
            log.emit(RateEvent.rate_updated(E18, i))
        assert len(log) == DEFAULT_MAX_EVENTS
        assert log.events[0].timestamp == 5
        assert log.last.timestamp == DEFAULT_MAX_EVENTS + 4

    def test_empty_log_passed_in_is_used(self, reserve_feed):
        log = EventLog()
        provider = SolvBTCRateProvider(FeedRegistry([reserve_feed]), events=log)
        provider.initialize(OWNER, RESERVE_FEED, UPDATER, THREE_PERCENT)
        provider.set_updater(OWNER, OTHER_FEED)
        assert log.last.type is EventType.UPDATER_SET
