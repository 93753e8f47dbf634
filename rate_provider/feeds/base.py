"""
Feed interfaces.

ReserveFeed is the synchronous read the rate provider performs during an
update. DataFeed is the async HTTP/RPC side: subclasses implement _fetch and
get throttling, a short result cache and transport retries from
fetch_with_retry().
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from ..models.reading import ReserveReading

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """A feed could not produce a usable value"""
    pass


@dataclass
class RateLimiter:
    """
    Token bucket shared by all requests of one feed.

    Args:
        requests_per_second: Refill rate of the bucket
        burst_size: Bucket capacity
    """
    requests_per_second: float
    burst_size: int = 10

    _tokens: float = field(default=0.0, init=False)
    _refilled_at: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self):
        self._tokens = float(self.burst_size)
        self._refilled_at = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        gained = (now - self._refilled_at) * self.requests_per_second
        self._tokens = min(float(self.burst_size), self._tokens + gained)
        self._refilled_at = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return
            # Sleep for the missing fraction; the token is spent on arrival
            await asyncio.sleep((1 - self._tokens) / self.requests_per_second)
            self._refill()
            self._tokens = max(0.0, self._tokens - 1)


class ReserveFeed(ABC):
    """
    Source of reserve readings as seen by the rate provider.

    latest_reading() is a single synchronous read: no fallback source and
    no retry. Implementations raise FeedError when they have nothing usable.
    """

    address: str

    @abstractmethod
    def latest_reading(self) -> ReserveReading:
        pass


class DataFeed(ABC):
    """
    Async network source.

    A cache_ttl of 0 disables caching, which reserve feeds rely on so every
    refresh() reaches the chain.
    """

    def __init__(
        self,
        name: str,
        rate_limit: float = 10.0,
        cache_ttl: float = 1.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.name = name
        self.rate_limiter = RateLimiter(rate_limit)
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        # key -> (expires_at, value)
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def _cache_key(self, *args, **kwargs) -> str:
        return f"{self.name}:{args}:{sorted(kwargs.items())}"

    async def fetch_with_retry(self, *args, **kwargs) -> Any:
        """
        Return a cached value if still fresh, otherwise call _fetch.

        Each failed attempt is logged and followed by a linearly growing
        pause. FeedError is raised once max_retries attempts have failed.
        """
        key = self._cache_key(*args, **kwargs)
        hit = self._cache.get(key)
        if hit is not None and time.monotonic() < hit[0]:
            return hit[1]

        await self.rate_limiter.acquire()

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                value = await self._fetch(*args, **kwargs)
            except Exception as e:
                last_error = e
                logger.warning(f"{self.name}: attempt {attempt}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * attempt)
                continue

            if self.cache_ttl > 0:
                self._cache[key] = (time.monotonic() + self.cache_ttl, value)
            return value

        raise FeedError(f"{self.name}: gave up after {self.max_retries} attempts: {last_error}")

    @abstractmethod
    async def _fetch(self, *args, **kwargs) -> Any:
        pass

    async def close(self):
        pass
