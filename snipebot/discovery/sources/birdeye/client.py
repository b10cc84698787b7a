"""Birdeye Data Services API client: new-listing feed.

Retry with exponential backoff for transient errors (timeout, 429, 5xx).
Every terminal failure surfaces as SourceUnavailableError.
"""

import asyncio
import time
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from snipebot.discovery.sources.birdeye.models import BirdeyeNewListing, BirdeyeNewListingPage
from snipebot.errors import SourceUnavailableError
from snipebot.models.token import TokenListing
from snipebot.utils.rate_limiter import RateLimiter

BASE_URL = "https://public-api.birdeye.so"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]
NEW_LISTING_LIMIT = 20  # endpoint maximum


def _parse_iso(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def listing_from_birdeye(item: BirdeyeNewListing, observed_at: float) -> TokenListing:
    return TokenListing(
        address=item.address,
        name=item.name,
        symbol=item.symbol,
        liquidity=item.liquidity,
        launched_at=_parse_iso(item.liquidityAddedAt),
        exchange=item.source or "birdeye",
        observed_at=observed_at,
    )


class BirdeyeClient:
    """Async client for Birdeye Data Services API."""

    name = "birdeye"

    def __init__(
        self,
        api_key: str,
        rate_limiter: RateLimiter | None = None,
        max_rps: float = 10.0,
    ) -> None:
        self._rate_limiter = rate_limiter or RateLimiter(max_rps)
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=15.0,
            headers={
                "X-API-KEY": api_key,
                "Accept": "application/json",
                "x-chain": "solana",
            },
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Execute a rate-limited request with retry for transient errors."""
        last_exc: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.request(method, path, **kwargs)

                if resp.status_code == 429:
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[BIRDEYE] 429 rate limited, retry {attempt + 1} in {delay}s: {path}")
                        await asyncio.sleep(delay)
                        continue
                    raise SourceUnavailableError(self.name, "rate limited (429)")

                if resp.status_code == 401:
                    raise SourceUnavailableError(self.name, "invalid API key (401)")

                if resp.status_code >= 500 and attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[BIRDEYE] {resp.status_code} server error, retry {attempt + 1} in {delay}s: {path}")
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                data = resp.json()
                if not data.get("success", True):
                    raise SourceUnavailableError(self.name, f"API error: {data.get('message', 'unknown')}")
                return data.get("data", data)

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exc = e
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[BIRDEYE] {type(e).__name__}, retry {attempt + 1} in {delay}s: {path}")
                    await asyncio.sleep(delay)
                    continue
                raise SourceUnavailableError(self.name, f"request failed after {MAX_RETRIES + 1} attempts: {e}") from e
            except httpx.HTTPStatusError as e:
                raise SourceUnavailableError(self.name, f"HTTP {e.response.status_code}: {path}") from e

        raise SourceUnavailableError(self.name, f"request failed after retries: {path}") from last_exc

    async def get_new_listings(self, limit: int = NEW_LISTING_LIMIT) -> list[BirdeyeNewListing]:
        data = await self._request(
            "GET",
            "/defi/v2/tokens/new_listing",
            params={"limit": limit, "meme_platform_enabled": "true"},
        )
        return BirdeyeNewListingPage.model_validate(data).items

    async def list_recent_listings(self) -> list[TokenListing]:
        items = await self.get_new_listings()
        now = time.time()
        return [listing_from_birdeye(item, now) for item in items if item.address]

    async def close(self) -> None:
        await self._client.aclose()
