import asyncio
import time

import httpx
from loguru import logger

from snipebot.discovery.sources.base import ms_to_seconds, to_float
from snipebot.discovery.sources.dexscreener.models import DexScreenerPair, DexScreenerTokenProfile
from snipebot.errors import SourceUnavailableError
from snipebot.models.token import TokenListing
from snipebot.utils.rate_limiter import RateLimiter

BASE_URL = "https://api.dexscreener.com"
MAX_RETRIES = 3
RETRY_DELAYS = [1.0, 2.0, 4.0]
BATCH_SIZE = 30  # /tokens/v1 accepts at most 30 addresses


def pair_to_listing(pair: DexScreenerPair, observed_at: float) -> TokenListing | None:
    if pair.baseToken is None or not pair.baseToken.address:
        return None
    market_cap = pair.marketCap if pair.marketCap is not None else pair.fdv
    return TokenListing(
        address=pair.baseToken.address,
        name=pair.baseToken.name,
        symbol=pair.baseToken.symbol,
        price=to_float(pair.priceUsd),
        price_change_24h=to_float(pair.priceChange.h24) if pair.priceChange else None,
        liquidity=to_float(pair.liquidity.usd) if pair.liquidity else None,
        market_cap=to_float(market_cap),
        volume_24h=to_float(pair.volume.h24) if pair.volume else None,
        launched_at=ms_to_seconds(pair.pairCreatedAt),
        exchange=pair.dexId or "dexscreener",
        observed_at=observed_at,
    )


class DexScreenerClient:
    """Async REST client for DexScreener public API (no auth required)."""

    name = "dexscreener"

    def __init__(self, rate_limiter: RateLimiter | None = None, max_rps: float = 1.0) -> None:
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=10.0,
            headers={"Accept": "application/json"},
        )
        self._rate_limiter = rate_limiter or RateLimiter(max_rps)

    async def _request_with_retry(self, path: str) -> httpx.Response:
        """Execute GET with retry on 429/timeout."""
        for attempt in range(MAX_RETRIES):
            await self._rate_limiter.acquire()
            try:
                response = await self._client.get(path)
                if response.status_code == 429:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    retry_after = response.headers.get("Retry-After")
                    if retry_after:
                        delay = max(float(retry_after), delay)
                    logger.debug(f"[DEXSCREENER] 429 rate limited, retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                response.raise_for_status()
                return response
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES - 1:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[DEXSCREENER] {type(e).__name__}, retrying in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    raise SourceUnavailableError(self.name, f"{type(e).__name__}: {e}") from e
            except httpx.HTTPStatusError as e:
                raise SourceUnavailableError(self.name, f"HTTP {e.response.status_code}") from e
        raise SourceUnavailableError(self.name, f"rate limited after {MAX_RETRIES} attempts: {path}")

    async def get_latest_profiles(self) -> list[DexScreenerTokenProfile]:
        response = await self._request_with_retry("/token-profiles/latest/v1")
        data = response.json()
        if not isinstance(data, list):
            return []
        return [DexScreenerTokenProfile.model_validate(p) for p in data]

    async def get_tokens_batch(self, addresses: list[str]) -> list[DexScreenerPair]:
        """Get pair data for up to 30 tokens."""
        if not addresses:
            return []
        addr_str = ",".join(addresses[:BATCH_SIZE])
        response = await self._request_with_retry(f"/tokens/v1/solana/{addr_str}")
        data = response.json()
        if isinstance(data, list):
            return [DexScreenerPair.model_validate(p) for p in data]
        return []

    async def list_recent_listings(self) -> list[TokenListing]:
        """Newest Solana token profiles, enriched with their most liquid pair."""
        profiles = await self.get_latest_profiles()
        addresses = list(dict.fromkeys(
            p.tokenAddress for p in profiles if p.chainId == "solana" and p.tokenAddress
        ))
        pairs = await self.get_tokens_batch(addresses)
        now = time.time()

        # Several pairs per token: keep the deepest pool
        best: dict[str, DexScreenerPair] = {}
        for pair in pairs:
            if pair.baseToken is None:
                continue
            current = best.get(pair.baseToken.address)
            liq = to_float(pair.liquidity.usd) if pair.liquidity else None
            cur_liq = to_float(current.liquidity.usd) if current and current.liquidity else None
            if current is None or (liq or 0) > (cur_liq or 0):
                best[pair.baseToken.address] = pair

        listings = [pair_to_listing(p, now) for p in best.values()]
        return [item for item in listings if item is not None]

    async def close(self) -> None:
        await self._client.aclose()
