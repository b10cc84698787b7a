"""Derived token fields: freshness bucket and heat score.

Heat is a 0-100 activity ranking: volume tier + |24h price change| tier +
liquidity tier + an age bonus that only shrinks as the token gets older.
"""

from __future__ import annotations

from snipebot.models.token import Freshness

# (threshold, points): first threshold exceeded wins
VOLUME_TIERS = ((100_000, 30), (50_000, 20), (10_000, 10))
PRICE_CHANGE_TIERS = ((100, 25), (50, 15), (20, 10))
LIQUIDITY_TIERS = ((50_000, 15), (10_000, 10), (1_000, 5))
# (max age minutes, bonus): first bucket the age falls under wins
AGE_BONUS = ((1, 30), (5, 25), (15, 20), (60, 10))


def freshness_bucket(age_seconds: float) -> Freshness:
    if age_seconds < 60:
        return Freshness.ULTRA_FRESH
    if age_seconds < 5 * 60:
        return Freshness.FRESH
    if age_seconds < 30 * 60:
        return Freshness.RECENT
    return Freshness.OLD


def _tier(value: float, tiers: tuple[tuple[float, int], ...]) -> int:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def age_bonus(age_minutes: float) -> int:
    for max_age, bonus in AGE_BONUS:
        if age_minutes < max_age:
            return bonus
    return 0


def heat_score(
    *,
    volume_24h: float,
    price_change_24h: float,
    liquidity: float,
    age_seconds: float,
) -> int:
    score = (
        _tier(volume_24h or 0.0, VOLUME_TIERS)
        + _tier(abs(price_change_24h or 0.0), PRICE_CHANGE_TIERS)
        + _tier(liquidity or 0.0, LIQUIDITY_TIERS)
        + age_bonus(max(age_seconds, 0.0) / 60.0)
    )
    return max(0, min(100, score))
