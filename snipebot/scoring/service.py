"""Scoring service: TTL cache in front of the Scorer, plus the background loop.

`score()` never raises. A scorer failure falls back to the last cached
result for the token, or the neutral default when nothing was cached.
"""

from __future__ import annotations

import asyncio
import time

from loguru import logger

from snipebot.discovery.registry import TokenRegistry
from snipebot.errors import ScoringUnavailableError
from snipebot.models.token import ScoringResult, TokenRecord
from snipebot.scoring.base import Scorer
from snipebot.scoring.board import RecommendationBoard


class ScoringService:
    def __init__(
        self,
        scorer: Scorer,
        registry: TokenRegistry,
        *,
        board: RecommendationBoard | None = None,
        ttl_sec: float = 300.0,
        loop_interval_sec: float = 60.0,
        batch_size: int = 20,
        call_delay_sec: float = 1.0,
    ) -> None:
        self._scorer = scorer
        self._registry = registry
        self._board = board
        self._ttl = ttl_sec
        self._loop_interval = loop_interval_sec
        self._batch_size = batch_size
        self._call_delay = call_delay_sec
        self.calls = 0
        self.failures = 0

    def cached(self, address: str, *, now: float | None = None) -> ScoringResult | None:
        """Fresh cached result, or None."""
        record = self._registry.get(address)
        now = time.time() if now is None else now
        if record is not None and record.score_is_fresh(now, self._ttl):
            return record.scoring
        return None

    async def score(self, token: TokenRecord, *, now: float | None = None) -> ScoringResult:
        now = time.time() if now is None else now
        current = self._registry.get(token.address) or token
        if current.score_is_fresh(now, self._ttl):
            return current.scoring  # type: ignore[return-value]

        self.calls += 1
        try:
            result = await self._scorer.analyze(token.address, current.metadata())
        except ScoringUnavailableError as e:
            self.failures += 1
            logger.warning(f"[SCORING] Scorer unavailable for {token.address[:12]}: {e}")
            return current.scoring or ScoringResult.neutral()
        except Exception as e:
            self.failures += 1
            logger.error(f"[SCORING] Unexpected scorer error for {token.address[:12]}: {e}")
            return current.scoring or ScoringResult.neutral()

        await self._registry.attach_score(token.address, result, at=now)
        if self._board is not None:
            fresh = self._registry.get(token.address) or current
            self._board.consider(fresh, result, now=now)
        logger.debug(
            f"[SCORING] {current.symbol} ({token.address[:12]}): {result.score}/100 "
            f"{result.recommendation.value} risk={result.risk_level.name}"
        )
        return result

    def due_for_scoring(self, *, now: float | None = None) -> list[TokenRecord]:
        """Top tokens by heat that are unscored or past the TTL."""
        now = time.time() if now is None else now
        due = [t for t in self._registry.list() if not t.score_is_fresh(now, self._ttl)]
        return due[: self._batch_size]

    async def score_batch(self) -> int:
        due = self.due_for_scoring()
        for i, token in enumerate(due):
            if i:
                await asyncio.sleep(self._call_delay)
            await self.score(token)
        return len(due)

    async def run_scoring_loop(self) -> None:
        logger.info(f"[SCORING] Scoring loop started (every {self._loop_interval}s)")
        while True:
            try:
                count = await self.score_batch()
                if count:
                    logger.info(f"[SCORING] Scored {count} tokens")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[SCORING] Loop error: {e}")
            await asyncio.sleep(self._loop_interval)
