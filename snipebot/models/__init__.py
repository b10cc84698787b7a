from snipebot.models.token import (
    Freshness,
    Recommendation,
    RiskLevel,
    ScoringResult,
    TokenListing,
    TokenRecord,
)
from snipebot.models.trade import (
    CloseReason,
    Position,
    PositionStatus,
    Quote,
    SniperPolicy,
    SniperStats,
    SwapReceipt,
    TradeResult,
)

__all__ = [
    "Freshness",
    "RiskLevel",
    "Recommendation",
    "ScoringResult",
    "TokenListing",
    "TokenRecord",
    "SniperPolicy",
    "SniperStats",
    "Position",
    "PositionStatus",
    "CloseReason",
    "Quote",
    "SwapReceipt",
    "TradeResult",
]
