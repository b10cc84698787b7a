"""LLM-based token scoring via OpenRouter API.

Sends the registry metadata of one token and asks for a strict JSON
verdict: score, BUY/HOLD/SELL/AVOID, confidence, risk level, predicted
multiple, reasons, timeframe. Transport and parse failures raise
ScoringUnavailableError; the ScoringService owns the fallback.
"""

import asyncio
import json

import httpx
from loguru import logger

from snipebot.errors import ScoringUnavailableError
from snipebot.models.token import Recommendation, RiskLevel, ScoringResult
from snipebot.utils.rate_limiter import RateLimiter

MAX_RETRIES = 2
RETRY_DELAYS = [2.0, 5.0]
MAX_REASONS = 5

PROMPT_TEMPLATE = """Analyze this Solana token for trading potential. Be concise.

Token Address: {address}
{context}

Respond in this EXACT JSON format (no markdown):
{{"score": <0-100>, "recommendation": "BUY|HOLD|SELL|AVOID", "confidence": <0-100>, "risk_level": "LOW|MEDIUM|HIGH|EXTREME", "predicted_multiple": <number>, "reasons": ["reason1", ...], "timeframe": "e.g. 1-4 hours"}}

Rules:
- Focus on memecoin potential, community strength and moonshot probability
- 3-5 key reasons
- Very new tokens with thin liquidity are HIGH or EXTREME risk"""


def build_context(metadata: dict) -> str:
    labels = {
        "name": "Name",
        "symbol": "Symbol",
        "liquidity": "Liquidity (USD)",
        "market_cap": "Market Cap (USD)",
        "volume_24h": "Volume 24h (USD)",
        "price_change_24h": "Price Change 24h (%)",
        "holders": "Holders",
        "age_minutes": "Age (minutes)",
        "verified": "Contract Verified",
        "renounced": "Ownership Renounced",
        "exchange": "Exchange",
    }
    lines = []
    for key, label in labels.items():
        value = metadata.get(key)
        if value is None:
            value = "Unknown"
        lines.append(f"{label}: {value}")
    return "\n".join(lines)


def parse_scoring(content: str) -> ScoringResult:
    """Parse the model's JSON answer. Raises ScoringUnavailableError on garbage."""
    content = content.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[-1]
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]
    content = content.strip()

    try:
        data = json.loads(content)
        reasons = data.get("reasons") or []
        return ScoringResult(
            score=max(0, min(100, int(data.get("score", 50)))),
            recommendation=Recommendation.parse(data.get("recommendation")),
            confidence=max(0, min(100, int(data.get("confidence", 50)))),
            risk_level=RiskLevel.parse(data.get("risk_level")),
            predicted_multiple=max(0.0, float(data.get("predicted_multiple", 2.0))),
            reasons=tuple(str(r) for r in reasons[:MAX_REASONS]),
            timeframe=str(data.get("timeframe") or "1-4 hours"),
        )
    except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
        raise ScoringUnavailableError(f"unparseable LLM response: {e}; content: {content[:200]}") from e


class LLMScorer:
    """Token scoring via OpenRouter chat completions."""

    BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: str,
        model: str = "google/gemini-2.5-flash-lite",
        max_rps: float = 2.0,
    ) -> None:
        self._rate_limiter = RateLimiter(max_rps)
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=30.0,  # LLM responses can be slow
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def analyze(self, token_address: str, metadata: dict) -> ScoringResult:
        prompt = PROMPT_TEMPLATE.format(address=token_address, context=build_context(metadata))
        last_error = "no attempts"

        for attempt in range(MAX_RETRIES + 1):
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.post(
                    "/chat/completions",
                    json={
                        "model": self._model,
                        "messages": [{"role": "user", "content": prompt}],
                        "max_tokens": 400,
                        "temperature": 0.1,
                    },
                )

                if resp.status_code == 429 or resp.status_code >= 500:
                    last_error = f"HTTP {resp.status_code}"
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[LLM] {last_error}, retrying in {delay}s")
                        await asyncio.sleep(delay)
                        continue
                    break

                if resp.status_code != 200:
                    raise ScoringUnavailableError(f"LLM API error: HTTP {resp.status_code}")

                data = resp.json()
                content = (
                    data.get("choices", [{}])[0]
                    .get("message", {})
                    .get("content", "")
                )
                return parse_scoring(content or "")

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[LLM] {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)

        raise ScoringUnavailableError(f"LLM failed after {MAX_RETRIES + 1} attempts: {last_error}")

    async def close(self) -> None:
        await self._client.aclose()
