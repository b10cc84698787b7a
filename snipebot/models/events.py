"""Notification events: tagged records handed to the Notifier.

Formatting and delivery belong to the notifier; events only carry data.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from snipebot.models.token import ScoringResult


@dataclass(frozen=True)
class BuySucceeded:
    token_address: str
    sol_spent: float
    amount_received: float
    price: float
    signature: str
    position_id: str
    original_amount: float | None = None
    slippage_bps: int | None = None
    scoring: ScoringResult | None = None
    kind: str = field(default="buy_success", init=False)


@dataclass(frozen=True)
class BuyFailed:
    token_address: str
    error: str
    error_type: str
    scoring: ScoringResult | None = None
    kind: str = field(default="buy_failed", init=False)


@dataclass(frozen=True)
class SellSucceeded:
    token_address: str
    percentage: float
    amount_sold: float
    sol_received: float
    price: float
    signature: str
    kind: str = field(default="sell_success", init=False)


@dataclass(frozen=True)
class SellFailed:
    token_address: str
    error: str
    error_type: str
    kind: str = field(default="sell_failed", init=False)


@dataclass(frozen=True)
class PositionClosed:
    position_id: str
    token_address: str
    symbol: str
    reason: str
    pnl_pct: float
    sol_received: float
    signature: str | None = None
    kind: str = field(default="position_closed", init=False)


@dataclass(frozen=True)
class ExitFailed:
    position_id: str
    token_address: str
    reason: str
    attempts: int
    error: str
    kind: str = field(default="exit_failed", init=False)


NotificationEvent = BuySucceeded | BuyFailed | SellSucceeded | SellFailed | PositionClosed | ExitFailed


def event_to_dict(event: NotificationEvent) -> dict:
    return asdict(event)
