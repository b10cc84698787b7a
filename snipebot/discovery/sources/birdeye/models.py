"""Birdeye API response models."""

from pydantic import BaseModel, Field


class BirdeyeNewListing(BaseModel):
    """Item of /defi/v2/tokens/new_listing."""

    address: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    source: str | None = None
    liquidity: float | None = None
    liquidityAddedAt: str | None = None  # ISO-8601
    logoURI: str | None = None

    model_config = {"extra": "ignore"}


class BirdeyeNewListingPage(BaseModel):
    items: list[BirdeyeNewListing] = Field(default_factory=list)

    model_config = {"extra": "ignore"}
