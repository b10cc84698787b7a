"""Sniper decision chain: pure checks, sizing and slippage.

Checks run in order and the first failure wins:
  (a) liquidity floor (before any scoring call)
  (b) risk level within the user's tolerance
  (c) market-cap ceiling, relaxed for large predicted multiples
  (d) minimum score
  (e) scorer did not say AVOID
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from snipebot.models.token import Recommendation, ScoringResult, TokenRecord
from snipebot.models.trade import SniperPolicy


class Rejection(str, Enum):
    LOW_LIQUIDITY = "low_liquidity"
    RISK_TOO_HIGH = "risk_too_high"
    MARKET_CAP_TOO_HIGH = "market_cap_too_high"
    SCORE_TOO_LOW = "score_too_low"
    AVOID = "avoid"


@dataclass(frozen=True)
class DecisionLimits:
    min_liquidity_usd: float = 100.0
    max_market_cap_usd: float = 50_000.0
    relaxed_market_cap_usd: float = 200_000.0
    relaxed_multiple: float = 10.0
    min_buy_sol: float = 0.01
    max_buy_sol: float = 5.0
    max_slippage_cap_bps: int = 2500


@dataclass(frozen=True)
class Decision:
    buy: bool
    rejection: Rejection | None = None
    detail: str = ""
    amount: float = 0.0
    slippage_bps: int = 0
    scoring: ScoringResult | None = None

    @classmethod
    def reject(cls, rejection: Rejection, detail: str, scoring: ScoringResult | None = None) -> Decision:
        return cls(buy=False, rejection=rejection, detail=detail, scoring=scoring)


def check_liquidity(token: TokenRecord, limits: DecisionLimits) -> Decision | None:
    if token.liquidity < limits.min_liquidity_usd:
        return Decision.reject(
            Rejection.LOW_LIQUIDITY,
            f"liquidity ${token.liquidity:,.0f} < ${limits.min_liquidity_usd:,.0f}",
        )
    return None


def market_cap_ceiling(scoring: ScoringResult, limits: DecisionLimits) -> float:
    if scoring.predicted_multiple > limits.relaxed_multiple:
        return limits.relaxed_market_cap_usd
    return limits.max_market_cap_usd


def size_position(policy: SniperPolicy, scoring: ScoringResult, limits: DecisionLimits) -> float:
    amount = policy.buy_amount
    if policy.adaptive_sizing:
        if scoring.confidence > 80 and scoring.predicted_multiple > 10:
            amount *= 1.5
        elif scoring.confidence > 60 and scoring.predicted_multiple > 5:
            amount *= 1.2
        elif scoring.confidence < 40:
            amount *= 0.5
    return max(limits.min_buy_sol, min(limits.max_buy_sol, amount))


def adjust_slippage(policy: SniperPolicy, scoring: ScoringResult, limits: DecisionLimits) -> int:
    slippage = float(policy.max_slippage_bps)
    if scoring.predicted_multiple > 50:
        slippage = min(2500.0, slippage * 1.5)
    elif scoring.predicted_multiple > 10:
        slippage = min(2000.0, slippage * 1.2)
    return int(min(slippage, limits.max_slippage_cap_bps))


def decide_scored(
    token: TokenRecord,
    scoring: ScoringResult,
    policy: SniperPolicy,
    limits: DecisionLimits,
) -> Decision:
    """Checks (b)-(e) for a token that already passed the liquidity floor."""
    if scoring.risk_level > policy.risk_tolerance:
        return Decision.reject(
            Rejection.RISK_TOO_HIGH,
            f"risk {scoring.risk_level.name} > tolerance {policy.risk_tolerance.name}",
            scoring,
        )

    ceiling = market_cap_ceiling(scoring, limits)
    if token.market_cap > ceiling:
        return Decision.reject(
            Rejection.MARKET_CAP_TOO_HIGH,
            f"market cap ${token.market_cap:,.0f} > ${ceiling:,.0f}",
            scoring,
        )

    if scoring.score < policy.min_score:
        return Decision.reject(Rejection.SCORE_TOO_LOW, f"score {scoring.score} < {policy.min_score}", scoring)

    if scoring.recommendation == Recommendation.AVOID:
        return Decision.reject(Rejection.AVOID, "scorer recommends AVOID", scoring)

    return Decision(
        buy=True,
        amount=size_position(policy, scoring, limits),
        slippage_bps=adjust_slippage(policy, scoring, limits),
        scoring=scoring,
    )


def decide(
    token: TokenRecord,
    scoring: ScoringResult,
    policy: SniperPolicy,
    limits: DecisionLimits,
) -> Decision:
    """Full chain (a)-(e) when the scoring result is already at hand."""
    return check_liquidity(token, limits) or decide_scored(token, scoring, policy, limits)
