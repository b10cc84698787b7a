"""Token filter value object and the pure filter function.

All criteria are optional and combine with AND. `a.combine(b)` is the
filter that accepts exactly what both `a` and `b` accept, so applying two
filters in sequence equals applying their combination once.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable

from snipebot.models.token import Freshness, Recommendation, RiskLevel, TokenRecord

# (field on filter, attribute on record)
_MIN_BOUNDS = (
    ("min_liquidity", "liquidity"),
    ("min_market_cap", "market_cap"),
    ("min_age_minutes", "age_minutes"),
    ("min_volume", "volume_24h"),
    ("min_holders", "holder_count"),
    ("min_score", "score"),
)
_MAX_BOUNDS = (
    ("max_liquidity", "liquidity"),
    ("max_market_cap", "market_cap"),
    ("max_age_minutes", "age_minutes"),
    ("max_volume", "volume_24h"),
    ("max_holders", "holder_count"),
    ("max_score", "score"),
)
_SET_FIELDS = (
    ("risk_levels", "risk_level"),
    ("freshness", "freshness"),
    ("exchanges", "exchange"),
    ("recommendations", "recommendation"),
)
_FLAG_FIELDS = ("verified", "renounced")


@dataclass(frozen=True)
class TokenFilter:
    min_liquidity: float | None = None
    max_liquidity: float | None = None
    min_market_cap: float | None = None
    max_market_cap: float | None = None
    min_age_minutes: float | None = None
    max_age_minutes: float | None = None
    min_score: int | None = None
    max_score: int | None = None
    min_volume: float | None = None
    max_volume: float | None = None
    min_holders: int | None = None
    max_holders: int | None = None
    risk_levels: frozenset[RiskLevel] | None = None
    freshness: frozenset[Freshness] | None = None
    exchanges: frozenset[str] | None = None
    recommendations: frozenset[Recommendation] | None = None
    verified: bool | None = None
    renounced: bool | None = None
    # set when combining two filters with contradicting flags
    unsatisfiable: bool = False

    def combine(self, other: TokenFilter) -> TokenFilter:
        """Intersection of two filters: tighter bound wins, sets intersect."""
        values: dict = {}
        for name, _ in _MIN_BOUNDS:
            values[name] = _pick(getattr(self, name), getattr(other, name), max)
        for name, _ in _MAX_BOUNDS:
            values[name] = _pick(getattr(self, name), getattr(other, name), min)
        for name, _ in _SET_FIELDS:
            a, b = getattr(self, name), getattr(other, name)
            values[name] = b if a is None else a if b is None else a & b

        unsatisfiable = self.unsatisfiable or other.unsatisfiable
        for name in _FLAG_FIELDS:
            a, b = getattr(self, name), getattr(other, name)
            if a is not None and b is not None and a != b:
                unsatisfiable = True
            values[name] = a if a is not None else b
        return TokenFilter(**values, unsatisfiable=unsatisfiable)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) in (None, False) for f in fields(self))


def _pick(a, b, choose):
    if a is None:
        return b
    if b is None:
        return a
    return choose(a, b)


def matches(token: TokenRecord, criteria: TokenFilter) -> bool:
    if criteria.unsatisfiable:
        return False

    for name, attr in _MIN_BOUNDS:
        bound = getattr(criteria, name)
        if bound is None:
            continue
        value = getattr(token, attr)
        if value is None or value < bound:
            return False

    for name, attr in _MAX_BOUNDS:
        bound = getattr(criteria, name)
        if bound is None:
            continue
        value = getattr(token, attr)
        if value is None or value > bound:
            return False

    # unscored tokens fail risk/recommendation predicates
    for name, attr in _SET_FIELDS:
        allowed = getattr(criteria, name)
        if allowed is None:
            continue
        if getattr(token, attr) not in allowed:
            return False

    for name in _FLAG_FIELDS:
        wanted = getattr(criteria, name)
        if wanted is not None and getattr(token, name) != wanted:
            return False
    return True


def apply_filter(tokens: Iterable[TokenRecord], criteria: TokenFilter) -> list[TokenRecord]:
    """Tokens matching every criterion, hottest first (address breaks ties)."""
    return sorted(
        (t for t in tokens if matches(t, criteria)),
        key=lambda t: (-t.heat_score, t.address),
    )
