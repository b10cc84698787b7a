"""Pump.fun frontend API models."""

from pydantic import BaseModel


class PumpfunCoin(BaseModel):
    mint: str
    name: str | None = None
    symbol: str | None = None
    created_timestamp: int | None = None  # ms
    usd_market_cap: float | None = None
    complete: bool = False  # bonding curve finished, migrated to an AMM
    raydium_pool: str | None = None

    model_config = {"extra": "ignore"}
