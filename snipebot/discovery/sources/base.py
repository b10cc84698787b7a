"""Market source interface.

Every source turns its own payload shape into `TokenListing`s; the
aggregator only ever sees the normalized form. On-chain pool decoders fit
behind the same protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from snipebot.models.token import TokenListing


@runtime_checkable
class MarketSource(Protocol):
    name: str

    async def list_recent_listings(self) -> list[TokenListing]:
        """Return the source's most recent listings. Raise SourceUnavailableError on failure."""
        ...

    async def close(self) -> None: ...


def ms_to_seconds(value: int | float | None) -> float | None:
    """Normalize a millisecond-or-second epoch to seconds."""
    if value is None or value <= 0:
        return None
    return value / 1000.0 if value > 10_000_000_000 else float(value)


def to_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
