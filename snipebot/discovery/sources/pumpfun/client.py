"""Pump.fun frontend API client: newest bonding-curve launches."""

import asyncio
import time

import httpx
from loguru import logger

from snipebot.discovery.sources.base import ms_to_seconds
from snipebot.discovery.sources.pumpfun.models import PumpfunCoin
from snipebot.errors import SourceUnavailableError
from snipebot.models.token import TokenListing
from snipebot.utils.rate_limiter import RateLimiter

BASE_URL = "https://frontend-api-v3.pump.fun"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


def listing_from_coin(coin: PumpfunCoin, observed_at: float) -> TokenListing:
    return TokenListing(
        address=coin.mint,
        name=coin.name,
        symbol=coin.symbol,
        market_cap=coin.usd_market_cap,
        launched_at=ms_to_seconds(coin.created_timestamp),
        exchange="raydium" if coin.complete else "pumpfun",
        observed_at=observed_at,
    )


class PumpfunClient:
    """Async HTTP client for Pump.fun frontend API (free, no key)."""

    name = "pumpfun"

    def __init__(self, max_rps: float = 2.0, limit: int = 50) -> None:
        self._rate_limiter = RateLimiter(max_rps)
        self._client = httpx.AsyncClient(timeout=10.0)
        self._limit = limit

    async def close(self) -> None:
        await self._client.aclose()

    async def get_latest_coins(self) -> list[PumpfunCoin]:
        url = f"{BASE_URL}/coins"
        params = {
            "offset": 0,
            "limit": self._limit,
            "sort": "created_timestamp",
            "order": "DESC",
            "includeNsfw": "false",
        }

        for attempt in range(MAX_RETRIES + 1):
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.get(url, params=params)

                if resp.status_code == 429:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[PUMPFUN] Rate limited, waiting {delay}s")
                    await asyncio.sleep(delay)
                    continue

                if resp.status_code != 200:
                    raise SourceUnavailableError(self.name, f"HTTP {resp.status_code}")

                data = resp.json()
                items = data if isinstance(data, list) else []
                return [PumpfunCoin.model_validate(item) for item in items if item.get("mint")]

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[PUMPFUN] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    raise SourceUnavailableError(self.name, f"{type(e).__name__}: {e}") from e

        raise SourceUnavailableError(self.name, "rate limited")

    async def list_recent_listings(self) -> list[TokenListing]:
        coins = await self.get_latest_coins()
        now = time.time()
        return [listing_from_coin(c, now) for c in coins]
