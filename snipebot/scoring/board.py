"""Recommendation board: bounded, most-recent-first list of BUY calls.

A token is promoted when its scoring says BUY with a score at or above the
promotion threshold. Re-promotion of a listed token moves it to the front.
Entries older than `max_age_sec` expire on every read and write.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from snipebot.models.token import Recommendation, RiskLevel, ScoringResult, TokenRecord


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


TIME_WINDOWS = {
    Urgency.CRITICAL: "Next 5-15 minutes",
    Urgency.HIGH: "Next 15-30 minutes",
    Urgency.MEDIUM: "Next 30-60 minutes",
    Urgency.LOW: "Next 1-2 hours",
}


@dataclass(frozen=True)
class BoardEntry:
    token: TokenRecord
    scoring: ScoringResult
    urgency: Urgency
    reasons: tuple[str, ...]
    suggested_amount: float  # SOL
    time_window: str
    promoted_at: float


def urgency_for(score: int, heat: int) -> Urgency:
    if score >= 90 and heat >= 80:
        return Urgency.CRITICAL
    if score >= 80 and heat >= 60:
        return Urgency.HIGH
    if score >= 75 and heat >= 40:
        return Urgency.MEDIUM
    return Urgency.LOW


def suggested_amount(result: ScoringResult, base: float = 0.1) -> float:
    amount = base
    if result.confidence > 90:
        amount *= 1.5
    elif result.confidence > 80:
        amount *= 1.2
    elif result.confidence < 60:
        amount *= 0.7

    if result.predicted_multiple > 50:
        amount *= 1.3
    elif result.predicted_multiple > 20:
        amount *= 1.1

    if result.risk_level == RiskLevel.LOW:
        amount *= 1.2
    elif result.risk_level == RiskLevel.HIGH:
        amount *= 0.8
    elif result.risk_level == RiskLevel.EXTREME:
        amount *= 0.5

    return max(0.01, min(1.0, amount))


BoardListener = Callable[[list[BoardEntry]], None]


class RecommendationBoard:
    def __init__(
        self,
        *,
        min_score: int = 75,
        max_items: int = 10,
        max_age_sec: float = 1800.0,
    ) -> None:
        self._min_score = min_score
        self._max_items = max_items
        self._max_age = max_age_sec
        self._entries: list[BoardEntry] = []
        self._listeners: list[BoardListener] = []

    def add_listener(self, listener: BoardListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BoardListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def qualifies(self, result: ScoringResult) -> bool:
        return result.recommendation == Recommendation.BUY and result.score >= self._min_score

    def consider(self, token: TokenRecord, result: ScoringResult, *, now: float | None = None) -> BoardEntry | None:
        """Promote the token if the result qualifies. Returns the new entry."""
        if not self.qualifies(result):
            return None
        now = time.time() if now is None else now

        urgency = urgency_for(result.score, token.heat_score)
        reasons = (
            f"Score: {result.score}/100 ({result.confidence}% confidence)",
            f"Predicted potential: {result.predicted_multiple:g}x",
            f"Risk level: {result.risk_level.name}",
            f"Market cap: ${token.market_cap:,.0f}",
            f"24h volume: ${token.volume_24h:,.0f}",
            f"Heat score: {token.heat_score}/100",
            *result.reasons[:3],
        )
        entry = BoardEntry(
            token=token,
            scoring=result,
            urgency=urgency,
            reasons=reasons,
            suggested_amount=suggested_amount(result),
            time_window=TIME_WINDOWS[urgency],
            promoted_at=now,
        )

        others = [e for e in self._entries if e.token.address != token.address]
        self._entries = [entry, *others][: self._max_items]
        self._expire(now)
        logger.info(f"[BOARD] New recommendation: {token.symbol} ({urgency.value} urgency)")
        self._notify()
        return entry

    def _expire(self, now: float) -> None:
        self._entries = [e for e in self._entries if now - e.promoted_at < self._max_age]

    def entries(self, *, now: float | None = None) -> list[BoardEntry]:
        self._expire(time.time() if now is None else now)
        return list(self._entries)

    def _notify(self) -> None:
        snapshot = list(self._entries)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"[BOARD] Listener failed: {e}")
