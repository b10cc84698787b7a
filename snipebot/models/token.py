"""Token-side data: registry records, source listings, scoring results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from pydantic import BaseModel


class Freshness(str, Enum):
    ULTRA_FRESH = "ULTRA_FRESH"  # < 1 min
    FRESH = "FRESH"  # < 5 min
    RECENT = "RECENT"  # < 30 min
    OLD = "OLD"


class RiskLevel(IntEnum):
    """Ordered so that `token_risk <= policy_tolerance` is a plain comparison."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    EXTREME = 4

    @classmethod
    def parse(cls, value: str | int | RiskLevel | None, default: RiskLevel | None = None) -> RiskLevel:
        if isinstance(value, RiskLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str) and value.strip().upper() in cls.__members__:
            return cls[value.strip().upper()]
        return default if default is not None else cls.MEDIUM


class Recommendation(str, Enum):
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    AVOID = "AVOID"

    @classmethod
    def parse(cls, value: str | None) -> Recommendation:
        if value and value.strip().upper() in cls.__members__:
            return cls[value.strip().upper()]
        return cls.HOLD


@dataclass(frozen=True)
class ScoringResult:
    """Recommendation attached to a token by the scoring collaborator."""

    score: int  # 0-100
    recommendation: Recommendation
    confidence: int  # 0-100
    risk_level: RiskLevel
    predicted_multiple: float
    reasons: tuple[str, ...] = ()
    timeframe: str = "1-4 hours"

    @classmethod
    def neutral(cls) -> ScoringResult:
        """Used when the scorer is unreachable and nothing is cached."""
        return cls(
            score=50,
            recommendation=Recommendation.HOLD,
            confidence=50,
            risk_level=RiskLevel.MEDIUM,
            predicted_multiple=2.0,
            reasons=("Unable to analyze token data",),
        )


class TokenListing(BaseModel):
    """Normalized listing handed over by a market source adapter.

    None means "this source does not know"; the registry keeps whatever
    value it already has for that field.
    """

    address: str
    name: str | None = None
    symbol: str | None = None
    price: float | None = None
    price_change_24h: float | None = None
    liquidity: float | None = None
    market_cap: float | None = None
    volume_24h: float | None = None
    holder_count: int | None = None
    launched_at: float | None = None  # epoch seconds
    verified: bool | None = None
    renounced: bool | None = None
    exchange: str | None = None
    observed_at: float  # epoch seconds the source reported this data

    model_config = {"extra": "ignore"}


@dataclass(frozen=True)
class TokenRecord:
    """Latest known state of one token. Replaced on every update, never mutated."""

    address: str
    name: str = "Unknown"
    symbol: str = "UNK"
    price: float = 0.0
    price_change_24h: float = 0.0
    liquidity: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    holder_count: int | None = None
    launched_at: float | None = None
    verified: bool = False
    renounced: bool = False
    exchange: str = "unknown"
    # derived
    age_seconds: float = 0.0
    freshness: Freshness = Freshness.OLD
    heat_score: int = 0
    # bookkeeping
    last_updated: float = 0.0
    scoring: ScoringResult | None = None
    scored_at: float | None = None

    @property
    def age_minutes(self) -> float:
        return self.age_seconds / 60.0

    @property
    def score(self) -> int | None:
        return self.scoring.score if self.scoring else None

    @property
    def risk_level(self) -> RiskLevel | None:
        return self.scoring.risk_level if self.scoring else None

    @property
    def recommendation(self) -> Recommendation | None:
        return self.scoring.recommendation if self.scoring else None

    @property
    def trending(self) -> bool:
        return self.age_minutes < 60 or self.volume_24h > 50_000

    def score_is_fresh(self, now: float, ttl_sec: float) -> bool:
        return self.scoring is not None and self.scored_at is not None and now - self.scored_at < ttl_sec

    def metadata(self) -> dict:
        """Plain dict handed to the scorer."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "price": self.price,
            "liquidity": self.liquidity,
            "market_cap": self.market_cap,
            "volume_24h": self.volume_24h,
            "price_change_24h": self.price_change_24h,
            "holders": self.holder_count,
            "age_minutes": round(self.age_minutes, 1),
            "verified": self.verified,
            "renounced": self.renounced,
            "exchange": self.exchange,
        }
