"""Exit-condition check shared by every position monitor.

Pure function: no I/O, returns the close reason or None.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from snipebot.models.token import Recommendation, ScoringResult
from snipebot.models.trade import CloseReason

if TYPE_CHECKING:
    from snipebot.models.trade import Position


def check_close_conditions(
    pos: Position,
    current_price: float,
    *,
    take_profit_pct: float = 1000.0,
    scoring: ScoringResult | None = None,
    exit_min_confidence: int = 70,
) -> CloseReason | None:
    """Check if the position should be closed.

    Order:
    1. Target: PnL% >= take_profit_pct, or price reached the position's target price
    2. Stop: stop_loss set and price at or below it
    3. Scoring exit: cached recommendation SELL with confidence >= exit_min_confidence
    """
    pnl_pct = pos.compute_pnl_pct(current_price)

    if pnl_pct >= take_profit_pct or (pos.target_price > 0 and current_price >= pos.target_price):
        return CloseReason.TARGET_HIT

    if pos.stop_loss is not None and current_price <= pos.stop_loss:
        return CloseReason.STOP_HIT

    if (
        scoring is not None
        and scoring.recommendation == Recommendation.SELL
        and scoring.confidence >= exit_min_confidence
    ):
        return CloseReason.SCORING_SELL_SIGNAL

    return None
