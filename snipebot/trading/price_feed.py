"""Position price feed: SOL per token, from the Jupiter price API."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Protocol, runtime_checkable

import httpx
from loguru import logger
from pydantic import BaseModel

from snipebot.errors import PriceUnavailableError
from snipebot.trading.jupiter_swap import WSOL_MINT
from snipebot.utils.rate_limiter import RateLimiter

PRICE_URL = "https://api.jup.ag/price/v2"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


@runtime_checkable
class PriceFeed(Protocol):
    async def get_price(self, mint: str) -> float:
        """Current price in SOL per token. Raise PriceUnavailableError when unknown."""
        ...


class JupiterPrice(BaseModel):
    id: str
    type: str = ""
    price: Decimal | None = None

    model_config = {"extra": "ignore"}


class JupiterPriceFeed:
    def __init__(self, api_key: str = "", max_rps: float = 1.0) -> None:
        headers: dict[str, str] = {}
        if api_key:
            headers["x-api-key"] = api_key
        self._client = httpx.AsyncClient(timeout=10.0, headers=headers)
        self._rate_limiter = RateLimiter(max_rps)

    async def get_price(self, mint: str) -> float:
        params = {"ids": mint, "vsToken": WSOL_MINT}

        for attempt in range(MAX_RETRIES + 1):
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.get(PRICE_URL, params=params)

                if resp.status_code == 429:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[JUPITER] Rate limited, waiting {delay}s")
                    await asyncio.sleep(delay)
                    continue
                if resp.status_code != 200:
                    raise PriceUnavailableError(f"HTTP {resp.status_code} for {mint[:12]}")

                token_data = resp.json().get("data", {}).get(mint)
                if not token_data:
                    raise PriceUnavailableError(f"no price for {mint[:12]}")
                price = JupiterPrice.model_validate(token_data).price
                if price is None or price <= 0:
                    raise PriceUnavailableError(f"no price for {mint[:12]}")
                return float(price)

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[JUPITER] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    raise PriceUnavailableError(f"failed after {MAX_RETRIES + 1} attempts: {e}") from e

        raise PriceUnavailableError(f"rate limited for {mint[:12]}")

    async def close(self) -> None:
        await self._client.aclose()
