"""
Supply/TVL observation feed.

The off-chain updater learns total supply and TVL from an HTTP endpoint
returning JSON like:

    {"totalSupply": "4690352947360884307563", "totalTVL": "4690352947360884307563"}

Values are 1e18-scaled integers, sent as strings or numbers.
"""

import aiohttp
from dataclasses import dataclass
from typing import Optional
import time

from .base import DataFeed, FeedError


@dataclass
class SupplyTvlObservation:
    """One supply/TVL observation"""
    total_supply: int
    total_tvl: int
    timestamp: int


def _parse_amount(data: dict, key: str) -> int:
    if key not in data:
        raise FeedError(f"missing field {key!r} in supply/TVL response")
    value = data[key]
    if isinstance(value, bool) or isinstance(value, float):
        raise FeedError(f"{key} must be an integer amount, got {value!r}")
    try:
        amount = int(value)
    except (TypeError, ValueError) as e:
        raise FeedError(f"{key} is not an integer: {value!r}") from e
    if amount < 0:
        raise FeedError(f"{key} cannot be negative: {amount}")
    return amount


class SupplyTvlFeed(DataFeed):
    """
    HTTP JSON source of supply/TVL observations.

    No auth. Cached briefly so a burst of callers shares one request.
    """

    def __init__(self, url: str, cache_ttl: float = 5.0, request_timeout: float = 10.0):
        super().__init__(
            name="supply_tvl",
            rate_limit=1.0,
            cache_ttl=cache_ttl,
        )
        if not url:
            raise FeedError("supply_tvl: no URL configured")
        self.url = url
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch(self) -> SupplyTvlObservation:
        session = await self._get_session()

        async with session.get(self.url) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise FeedError(f"Supply/TVL API error {resp.status}: {text}")
            data = await resp.json()

        return SupplyTvlObservation(
            total_supply=_parse_amount(data, "totalSupply"),
            total_tvl=_parse_amount(data, "totalTVL"),
            timestamp=int(data.get("timestamp", time.time())),
        )

    async def get_observation(self) -> SupplyTvlObservation:
        return await self.fetch_with_retry()
