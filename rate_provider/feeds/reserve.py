"""
Reserve feeds.

StaticReserveFeed holds a reading set by hand (tests, dry runs).
ChainlinkReserveFeed reads latestRoundData() from an on-chain aggregator
over JSON-RPC. Its network refresh is async; the provider only ever sees
the last reading through latest_reading().
"""

import logging
import time
from typing import Optional

import aiohttp
from eth_abi import decode

from ..access import normalize_address
from ..models.reading import ReserveReading
from .base import DataFeed, FeedError, ReserveFeed

logger = logging.getLogger(__name__)

# keccak256("latestRoundData()")[:4]
LATEST_ROUND_DATA_SELECTOR = "0xfeaf968c"
LATEST_ROUND_DATA_TYPES = ["uint80", "int256", "uint256", "uint256", "uint80"]


class StaticReserveFeed(ReserveFeed):
    """Reserve feed whose reading is set directly"""

    def __init__(self, address: str, answer: Optional[int] = None, round_id: int = 1):
        self.address = normalize_address(address, "reserve feed")
        self._reading: Optional[ReserveReading] = None
        if answer is not None:
            self.set_answer(answer, round_id=round_id)

    def set_answer(self, answer: int, round_id: Optional[int] = None) -> ReserveReading:
        """Publish a new answer as the next round"""
        if round_id is None:
            round_id = self._reading.round_id + 1 if self._reading else 1
        now = int(time.time())
        self._reading = ReserveReading(
            round_id=round_id,
            answer=answer,
            started_at=now,
            updated_at=now,
            answered_in_round=round_id,
        )
        return self._reading

    def set_reading(self, reading: ReserveReading) -> None:
        self._reading = reading

    def latest_reading(self) -> ReserveReading:
        if self._reading is None:
            raise FeedError(f"reserve feed {self.address} has no reading")
        return self._reading


def decode_latest_round_data(result: str) -> ReserveReading:
    """Decode the hex return data of latestRoundData()"""
    if not isinstance(result, str) or not result.startswith("0x"):
        raise FeedError(f"unexpected eth_call result: {result!r}")

    try:
        raw = bytes.fromhex(result[2:])
        round_id, answer, started_at, updated_at, answered_in_round = decode(
            LATEST_ROUND_DATA_TYPES, raw
        )
    except Exception as e:
        raise FeedError(f"cannot decode latestRoundData: {e}") from e

    return ReserveReading(
        round_id=round_id,
        answer=answer,
        started_at=started_at,
        updated_at=updated_at,
        answered_in_round=answered_in_round,
    )


class ChainlinkReserveFeed(DataFeed, ReserveFeed):
    """
    Chainlink-style proof-of-reserve aggregator read via eth_call.

    Call refresh() (async) to pull a new round; latest_reading() returns the
    round pulled last and raises FeedError if there is none yet.
    """

    def __init__(
        self,
        address: str,
        rpc_url: str,
        request_timeout: float = 10.0,
        max_retries: int = 3,
    ):
        self.address = normalize_address(address, "reserve feed")
        super().__init__(
            name=f"reserve_feed:{self.address}",
            rate_limit=5.0,
            cache_ttl=0.0,
            max_retries=max_retries,
        )
        if not rpc_url:
            raise FeedError(f"{self.name}: no RPC URL configured")
        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._reading: Optional[ReserveReading] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch(self) -> ReserveReading:
        """eth_call latestRoundData() on the aggregator"""
        session = await self._get_session()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [
                {"to": self.address, "data": LATEST_ROUND_DATA_SELECTOR},
                "latest",
            ],
        }

        async with session.post(self.rpc_url, json=payload) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise FeedError(f"RPC error {resp.status}: {text}")
            data = await resp.json()

        if "error" in data:
            raise FeedError(f"eth_call failed: {data['error']}")

        return decode_latest_round_data(data.get("result"))

    async def refresh(self) -> ReserveReading:
        """Fetch the latest round from chain and keep it"""
        reading = await self.fetch_with_retry()
        self._reading = reading
        logger.debug(f"{self.name}: round {reading.round_id} answer {reading.answer}")
        return reading

    def latest_reading(self) -> ReserveReading:
        if self._reading is None:
            raise FeedError(f"{self.name}: no reading fetched yet")
        return self._reading
