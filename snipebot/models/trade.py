"""Trade-side data: sniper policy, positions, swap quotes and trade results."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from snipebot.models.token import RiskLevel


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(str, Enum):
    TARGET_HIT = "target_hit"
    STOP_HIT = "stop_hit"
    MANUAL = "manual"
    SCORING_SELL_SIGNAL = "scoring_sell_signal"
    ERROR_ABANDONED = "error_abandoned"


class SniperPolicy(BaseModel):
    """Per-user sniper settings. Immutable; updates produce a new policy."""

    enabled: bool = True
    buy_amount: float = Field(default=0.1, gt=0)  # SOL
    max_slippage_bps: int = Field(default=1000, gt=0)
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    min_score: int = Field(default=70, ge=0, le=100)
    adaptive_sizing: bool = True
    target_multiple: float = Field(default=10.0, gt=1)
    stop_loss_pct: float | None = Field(default=None, lt=0, gt=-100)
    scoring_required: bool = True

    model_config = {"frozen": True}

    @field_validator("risk_tolerance", mode="before")
    @classmethod
    def _parse_risk(cls, value: Any) -> RiskLevel:
        return RiskLevel.parse(value)


@dataclass
class Position:
    """An open holding created by a successful buy."""

    user_id: int
    token_address: str
    amount_held: float  # token units
    invested: float  # SOL
    entry_price: float  # SOL per token
    target_price: float
    stop_loss: float | None = None
    symbol: str = "UNK"
    signature: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    opened_at: float = field(default_factory=time.time)
    status: PositionStatus = PositionStatus.OPEN
    close_reason: CloseReason | None = None
    closed_at: float | None = None
    last_price: float | None = None
    pnl_pct: float = 0.0

    def current_value(self, price: float) -> float:
        return self.amount_held * price

    def compute_pnl_pct(self, price: float) -> float:
        if self.invested <= 0:
            return 0.0
        return (self.current_value(price) - self.invested) / self.invested * 100

    @property
    def is_active(self) -> bool:
        return self.status != PositionStatus.CLOSED


@dataclass(frozen=True)
class Quote:
    """Swap quote from the aggregator. Amounts in UI units of each asset."""

    input_mint: str
    output_mint: str
    in_amount: float
    out_amount: float
    slippage_bps: int
    price_impact_pct: float = 0.0
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class SwapReceipt:
    signature: str
    received_amount: float  # UI units of the output asset


@dataclass
class TradeResult:
    """Terminal outcome of one buy or sell attempt."""

    success: bool
    side: str  # "buy" | "sell"
    token_address: str
    signature: str | None = None
    amount_in: float | None = None
    amount_out: float | None = None
    price: float | None = None  # SOL per token
    slippage_bps: int | None = None
    error: str | None = None
    error_type: str | None = None
    position_id: str | None = None

    @classmethod
    def failure(cls, side: str, token_address: str, exc: Exception) -> TradeResult:
        return cls(
            success=False,
            side=side,
            token_address=token_address,
            error=str(exc),
            error_type=type(exc).__name__,
        )


@dataclass
class SniperStats:
    total_snipes: int = 0
    successful_snipes: int = 0
    failed_snipes: int = 0
    active_positions: int = 0
    closed_positions: int = 0
    realized_pnl_sol: float = 0.0
    best_multiple: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_snipes == 0:
            return 0.0
        return round(self.successful_snipes / self.total_snipes * 100, 1)
