"""
Rate Provider Runner

Operator commands and the off-chain updater loop.

Usage:
    python -m rate_provider.runner deploy
    python -m rate_provider.runner update --supply 4690352947360884307563 --tvl 4690352947360884307563
    python -m rate_provider.runner set-max-difference 30000000000000000
    python -m rate_provider.runner show
    python -m rate_provider.runner run --interval 3600
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from typing import Optional, Tuple

from .config import RateProviderConfig, load_config
from .errors import RateProviderError
from .events import EventLog
from .feeds.base import FeedError
from .feeds.registry import FeedRegistry
from .feeds.reserve import ChainlinkReserveFeed, StaticReserveFeed
from .feeds.supply import SupplyTvlFeed
from .main import SolvBTCRateProvider
from .models.event import RateEvent
from .store import JsonSnapshotStore, MemorySnapshotStore
from .validation import RATE_PRECISION_FACTOR

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers,
    )


def build_provider(config: RateProviderConfig) -> SolvBTCRateProvider:
    """Wire a provider to the JSON store and on-chain reserve feeds"""
    network = config.get_active_network()

    def make_feed(address: str) -> ChainlinkReserveFeed:
        return ChainlinkReserveFeed(
            address,
            rpc_url=network.rpc_url,
            request_timeout=network.request_timeout_seconds,
            max_retries=network.max_retries,
        )

    return SolvBTCRateProvider(
        feeds=FeedRegistry(factory=make_feed),
        store=JsonSnapshotStore(config.state_path),
    )


async def refresh_reserve_feed(provider: SolvBTCRateProvider) -> None:
    """Pull a fresh round for the currently configured reserve feed"""
    feed = provider.feeds.get(provider.get_reserve_feed())
    if isinstance(feed, ChainlinkReserveFeed):
        reading = await feed.refresh()
        logger.info(f"Reserve round {reading.round_id}: {reading.answer}")


async def close_feeds(provider: SolvBTCRateProvider) -> None:
    for feed in provider.feeds.feeds():
        if isinstance(feed, ChainlinkReserveFeed):
            await feed.close()


def deploy(provider: SolvBTCRateProvider, config: RateProviderConfig) -> None:
    """
    Initialize the snapshot from config, or bring the reserve feed in line.

    Safe to run repeatedly: an initialized provider only gets its reserve
    feed updated when it differs from the configured one.
    """
    reserve_feed = config.get_reserve_feed()

    if not provider.is_initialized:
        if not config.provider.owner:
            raise RateProviderError("provider.owner must be configured to deploy")
        provider.initialize(
            owner=config.provider.owner,
            reserve_feed=reserve_feed,
            updater=config.provider.updater,
            max_difference_percent=config.provider.max_difference_percent,
        )
        return

    if provider.get_reserve_feed().lower() != reserve_feed.lower():
        logger.info(f"Reserve feed changed: {provider.get_reserve_feed()} -> {reserve_feed}")
        provider.set_reserve_feed(config.provider.owner, reserve_feed)
    else:
        logger.info("Already deployed, nothing to do")


class RateUpdaterRunner:
    """
    Runs the off-chain updater: fetch supply/TVL, refresh the reserve feed,
    submit to the provider, sleep, repeat.
    """

    def __init__(
        self,
        provider: SolvBTCRateProvider,
        supply_feed: SupplyTvlFeed,
        update_interval: int = 3600,
        caller: Optional[str] = None,
    ):
        self.provider = provider
        self.supply_feed = supply_feed
        self.update_interval = update_interval
        self.caller = caller or provider.get_updater()

        self._running = False
        self._update_count = 0

    async def start(self):
        """Start the updater loop"""
        logger.info(f"Starting rate updater as {self.caller}")
        logger.info(f"Update interval: {self.update_interval}s")
        logger.info("-" * 60)

        self._running = True

        try:
            while self._running:
                await self._update_cycle()
                await asyncio.sleep(self.update_interval)
        except asyncio.CancelledError:
            logger.info("Rate updater cancelled")
        finally:
            await self.stop()

    async def stop(self):
        """Stop the updater loop"""
        self._running = False
        await self.supply_feed.close()
        await close_feeds(self.provider)
        logger.info("Rate updater stopped")

    async def _update_cycle(self) -> Optional[int]:
        """Single update cycle"""
        self._update_count += 1

        try:
            observation = await self.supply_feed.get_observation()
            await refresh_reserve_feed(self.provider)

            rate = self.provider.update_rate(
                self.caller, observation.total_supply, observation.total_tvl
            )
        except (FeedError, RateProviderError) as e:
            logger.error(f"[{self._update_count}] Update failed: {e}")
            return None

        last_event = self.provider.events.last
        status = last_event.name if last_event else "none"
        logger.info(
            f"[{self._update_count}] supply {observation.total_supply} | "
            f"tvl {observation.total_tvl} | rate {rate / RATE_PRECISION_FACTOR:.6f} ({status})"
        )
        return rate


async def run_once(
    provider: SolvBTCRateProvider,
    caller: str,
    total_supply: int,
    total_tvl: int,
) -> int:
    """Refresh the configured reserve feed and submit a single update"""
    try:
        await refresh_reserve_feed(provider)
        return provider.update_rate(caller, total_supply, total_tvl)
    finally:
        await close_feeds(provider)


def dry_run(
    provider: SolvBTCRateProvider,
    caller: str,
    total_supply: int,
    total_tvl: int,
    reserve: int,
) -> Tuple[int, Optional[RateEvent]]:
    """
    Show what an update would do against a hypothetical reserve reading.

    Runs on a throwaway provider holding a copy of the current snapshot, so
    nothing is persisted and the real event log is untouched.

    Returns:
        (rate the call would return, event it would emit)
    """
    scratch = SolvBTCRateProvider(
        feeds=FeedRegistry([StaticReserveFeed(provider.get_reserve_feed(), reserve)]),
        store=MemorySnapshotStore(provider.snapshot),
        events=EventLog(),
    )
    rate = scratch.update_rate(caller, total_supply, total_tvl)
    return rate, scratch.events.last


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SolvBTC Rate Provider")
    parser.add_argument("--config", "-c", help="Config file (YAML/JSON)")
    parser.add_argument("--network", "-n", help="Network to use (overrides config)")
    parser.add_argument("--caller", help="Caller address (default: configured role)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("deploy", help="Initialize state or sync the reserve feed")
    sub.add_parser("show", help="Print the current snapshot")

    update = sub.add_parser("update", help="Submit one supply/TVL observation")
    update.add_argument("--supply", type=int, required=True, help="Total supply (1e18 scale)")
    update.add_argument("--tvl", type=int, required=True, help="Total TVL (1e18 scale)")
    update.add_argument(
        "--reserve", type=int,
        help="Dry run: validate against this reserve without saving anything",
    )

    set_feed = sub.add_parser("set-feed", help="Set the reserve feed address")
    set_feed.add_argument("address")

    set_updater = sub.add_parser("set-updater", help="Set the updater address")
    set_updater.add_argument("address")

    set_diff = sub.add_parser("set-max-difference", help="Set max difference (1e18 = 100%%)")
    set_diff.add_argument("value", type=int)

    run = sub.add_parser("run", help="Run the updater loop")
    run.add_argument("--interval", "-i", type=int, help="Update interval in seconds")
    run.add_argument("--url", help="Supply/TVL endpoint (overrides config)")

    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = _build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.network:
        config.active_network = args.network
    setup_logging(config.log_level, config.log_file)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        provider = build_provider(config)

        if args.command == "deploy":
            deploy(provider, config)
            print(json.dumps(provider.snapshot.to_dict(), indent=2))

        elif args.command == "show":
            print(json.dumps(provider.get_state(), indent=2))

        elif args.command == "update":
            caller = args.caller or config.provider.updater
            if args.reserve is not None:
                rate, event = dry_run(provider, caller, args.supply, args.tvl, args.reserve)
                outcome = event.name if event else "none"
                print(f"Dry run, nothing saved. Rate: {rate} ({rate / RATE_PRECISION_FACTOR:.6f}) {outcome}")
            else:
                rate = loop.run_until_complete(
                    run_once(provider, caller, args.supply, args.tvl)
                )
                print(f"Rate: {rate} ({rate / RATE_PRECISION_FACTOR:.6f})")

        elif args.command == "set-feed":
            provider.set_reserve_feed(args.caller or config.provider.owner, args.address)

        elif args.command == "set-updater":
            provider.set_updater(args.caller or config.provider.owner, args.address)

        elif args.command == "set-max-difference":
            provider.set_max_difference_percent(args.caller or config.provider.owner, args.value)

        elif args.command == "run":
            runner = RateUpdaterRunner(
                provider,
                SupplyTvlFeed(args.url or config.updater.supply_tvl_url),
                update_interval=args.interval or config.updater.update_interval_seconds,
                caller=args.caller or config.provider.updater,
            )

            task = loop.create_task(runner.start())

            # Cancel rather than flag, so a pending sleep ends immediately
            def signal_handler(sig, frame):
                logger.info("Shutting down...")
                loop.call_soon_threadsafe(task.cancel)

            signal.signal(signal.SIGINT, signal_handler)
            loop.run_until_complete(task)

    except (RateProviderError, FeedError, ValueError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
