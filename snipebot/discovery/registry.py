"""Token registry: the one shared map of address → latest TokenRecord.

Writers (source merges, derived-field refresh, score attachment, eviction)
are serialized by a single asyncio.Lock. Records are frozen dataclasses
swapped in whole, so readers never need the lock and never see a
half-merged record.

Merge rules:
- field-level: every non-None field of the incoming listing overwrites
- last-write-wins by wall clock: an update older than the stored
  `last_updated` is dropped
- an update older than the eviction window is never admitted, so late
  data cannot resurrect an evicted token
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from enum import Enum

from loguru import logger

from snipebot.discovery.heat import freshness_bucket, heat_score
from snipebot.models.token import ScoringResult, TokenListing, TokenRecord

_MERGE_FIELDS = (
    "name",
    "symbol",
    "price",
    "price_change_24h",
    "liquidity",
    "market_cap",
    "volume_24h",
    "holder_count",
    "launched_at",
    "verified",
    "renounced",
    "exchange",
)


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STALE = "stale"  # older than the stored record
    EXPIRED = "expired"  # older than the eviction window


def derive(record: TokenRecord, now: float) -> TokenRecord:
    """Recompute age, freshness and heat for `now`."""
    launched = record.launched_at if record.launched_at is not None else record.last_updated
    age = max(0.0, now - launched)
    return replace(
        record,
        age_seconds=age,
        freshness=freshness_bucket(age),
        heat_score=heat_score(
            volume_24h=record.volume_24h,
            price_change_24h=record.price_change_24h,
            liquidity=record.liquidity,
            age_seconds=age,
        ),
    )


def record_from_listing(listing: TokenListing, now: float) -> TokenRecord:
    values = {
        name: getattr(listing, name)
        for name in _MERGE_FIELDS
        if getattr(listing, name) is not None
    }
    return derive(
        TokenRecord(address=listing.address, last_updated=listing.observed_at, **values),
        now,
    )


class TokenRegistry:
    """Concurrency-safe address → TokenRecord map."""

    def __init__(self, *, eviction_window_sec: float = 7200.0) -> None:
        self._records: dict[str, TokenRecord] = {}
        self._lock = asyncio.Lock()
        self._eviction_window = eviction_window_sec

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, address: object) -> bool:
        return address in self._records

    # ─── Writes ──────────────────────────────────────────────────────

    async def upsert(self, listing: TokenListing, *, now: float | None = None) -> UpsertOutcome:
        """Merge one source listing into the registry."""
        now = time.time() if now is None else now
        if now - listing.observed_at > self._eviction_window:
            return UpsertOutcome.EXPIRED

        async with self._lock:
            existing = self._records.get(listing.address)
            if existing is None:
                self._records[listing.address] = record_from_listing(listing, now)
                return UpsertOutcome.CREATED

            if listing.observed_at < existing.last_updated:
                logger.debug(
                    f"[REGISTRY] Stale update for {listing.address[:12]} "
                    f"({listing.observed_at:.0f} < {existing.last_updated:.0f}), ignored"
                )
                return UpsertOutcome.STALE

            changes = {
                name: getattr(listing, name)
                for name in _MERGE_FIELDS
                if getattr(listing, name) is not None
            }
            merged = replace(existing, last_updated=listing.observed_at, **changes)
            self._records[listing.address] = derive(merged, now)
            return UpsertOutcome.UPDATED

    async def attach_score(self, address: str, result: ScoringResult, *, at: float | None = None) -> bool:
        """Store a scoring result on a live record. Returns False if the token is gone."""
        at = time.time() if at is None else at
        async with self._lock:
            existing = self._records.get(address)
            if existing is None:
                return False
            self._records[address] = replace(existing, scoring=result, scored_at=at)
            return True

    async def refresh_derived(self, *, now: float | None = None) -> int:
        """Recompute derived fields for every record. `last_updated` is untouched."""
        now = time.time() if now is None else now
        async with self._lock:
            for address, record in self._records.items():
                self._records[address] = derive(record, now)
            return len(self._records)

    async def evict_older_than(self, max_age_sec: float, *, now: float | None = None) -> list[str]:
        """Drop records with no confirming update for `max_age_sec`. Returns evicted addresses."""
        now = time.time() if now is None else now
        cutoff = now - max_age_sec
        async with self._lock:
            evicted = [a for a, r in self._records.items() if r.last_updated < cutoff]
            for address in evicted:
                del self._records[address]
        if evicted:
            logger.info(f"[REGISTRY] Evicted {len(evicted)} stale tokens")
        return evicted

    # ─── Reads (lock-free snapshots) ─────────────────────────────────

    def get(self, address: str) -> TokenRecord | None:
        return self._records.get(address)

    def addresses(self) -> set[str]:
        return set(self._records)

    def list(self) -> list[TokenRecord]:
        """Snapshot of all records, hottest first."""
        return sorted(self._records.values(), key=lambda r: (-r.heat_score, r.address))

    def trending(self, limit: int = 10) -> list[TokenRecord]:
        return [r for r in self.list() if r.trending][:limit]

    def ultra_fresh(self, limit: int = 10, max_age_sec: float = 300.0) -> list[TokenRecord]:
        fresh = [r for r in self._records.values() if r.age_seconds <= max_age_sec]
        return sorted(fresh, key=lambda r: r.age_seconds)[:limit]

    def by_score(self, min_score: int = 70, limit: int = 10) -> list[TokenRecord]:
        scored = [r for r in self._records.values() if (r.score or 0) >= min_score]
        return sorted(scored, key=lambda r: -(r.score or 0))[:limit]
