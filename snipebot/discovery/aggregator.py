"""Discovery aggregator: fan out to market sources, merge into the registry.

Two cadences:
- full refresh: merge everything every source returns, recompute derived
  fields, evict stale records
- fast scan: admit only addresses the registry has never seen

A failing or slow source is logged and counted, never raised. Newly
created addresses are published to the TokenFeed.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field

from loguru import logger

from snipebot.discovery.feed import TokenFeed
from snipebot.discovery.registry import TokenRegistry, UpsertOutcome
from snipebot.discovery.sources.base import MarketSource
from snipebot.errors import SourceUnavailableError
from snipebot.models.token import TokenListing
from snipebot.utils.metrics import DiscoveryMetrics


@dataclass
class FanOutResult:
    listings: list[TokenListing] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    succeeded: list[str] = field(default_factory=list)


@dataclass
class RefreshReport:
    created: list[str] = field(default_factory=list)
    updated: int = 0
    stale: int = 0
    expired: int = 0
    evicted: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class DiscoveryAggregator:
    def __init__(
        self,
        sources: list[MarketSource],
        registry: TokenRegistry,
        feed: TokenFeed,
        *,
        metrics: DiscoveryMetrics | None = None,
        source_timeout_sec: float = 10.0,
        full_refresh_sec: float = 300.0,
        fast_scan_sec: float = 30.0,
        eviction_window_sec: float = 7200.0,
    ) -> None:
        self._sources = sources
        self._registry = registry
        self._feed = feed
        self.metrics = metrics or DiscoveryMetrics()
        self._source_timeout = source_timeout_sec
        self._full_refresh_sec = full_refresh_sec
        self._fast_scan_sec = fast_scan_sec
        self._eviction_window = eviction_window_sec
        self.last_full_refresh: float | None = None

    async def _call_source(self, source: MarketSource) -> list[TokenListing]:
        start = time.monotonic()
        try:
            listings = await asyncio.wait_for(source.list_recent_listings(), timeout=self._source_timeout)
        except asyncio.TimeoutError as e:
            latency = (time.monotonic() - start) * 1000
            self.metrics.record_failure(source.name, latency, "timeout", timeout=True)
            raise SourceUnavailableError(source.name, f"timed out after {self._source_timeout}s") from e
        except SourceUnavailableError as e:
            self.metrics.record_failure(source.name, (time.monotonic() - start) * 1000, e.reason)
            raise
        except Exception as e:
            self.metrics.record_failure(source.name, (time.monotonic() - start) * 1000, str(e))
            raise SourceUnavailableError(source.name, f"{type(e).__name__}: {e}") from e
        self.metrics.record_success(source.name, (time.monotonic() - start) * 1000, len(listings))
        return listings

    async def fan_out(self) -> FanOutResult:
        """Query every source concurrently; collect listings and per-source failures."""
        results = await asyncio.gather(
            *(self._call_source(s) for s in self._sources),
            return_exceptions=True,
        )
        out = FanOutResult()
        for source, result in zip(self._sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, SourceUnavailableError):
                logger.warning(f"[DISCOVERY] Source {source.name} unavailable: {result.reason}")
                out.failures[source.name] = result.reason
                continue
            if isinstance(result, BaseException):
                raise result
            out.succeeded.append(source.name)
            out.listings.extend(result)
        return out

    async def _merge(self, listings: list[TokenListing], report: RefreshReport, now: float) -> None:
        for listing in listings:
            outcome = await self._registry.upsert(listing, now=now)
            if outcome == UpsertOutcome.CREATED:
                report.created.append(listing.address)
            elif outcome == UpsertOutcome.UPDATED:
                report.updated += 1
            elif outcome == UpsertOutcome.STALE:
                report.stale += 1
            else:
                report.expired += 1

    def _publish(self, addresses: list[str]) -> None:
        for address in addresses:
            record = self._registry.get(address)
            if record is not None:
                self._feed.publish(record)

    async def full_refresh(self, *, now: float | None = None) -> RefreshReport:
        fan = await self.fan_out()
        now = time.time() if now is None else now
        report = RefreshReport(failures=fan.failures)

        await self._merge(fan.listings, report, now)
        await self._registry.refresh_derived(now=now)
        report.evicted = await self._registry.evict_older_than(self._eviction_window, now=now)

        self.metrics.full_refreshes += 1
        self.metrics.tokens_created += len(report.created)
        self.metrics.tokens_evicted += len(report.evicted)
        self.last_full_refresh = now

        logger.info(
            f"[DISCOVERY] Full refresh: {len(fan.succeeded)}/{len(self._sources)} sources, "
            f"{len(report.created)} new, {report.updated} updated, {len(report.evicted)} evicted, "
            f"{len(self._registry)} tracked"
        )
        self._publish(report.created)
        return report

    async def fast_scan(self, *, now: float | None = None) -> RefreshReport:
        fan = await self.fan_out()
        now = time.time() if now is None else now
        report = RefreshReport(failures=fan.failures)

        known = self._registry.addresses()
        fresh = [item for item in fan.listings if item.address not in known]
        await self._merge(fresh, report, now)

        self.metrics.fast_scans += 1
        self.metrics.tokens_created += len(report.created)
        if report.created:
            logger.info(f"[DISCOVERY] Fast scan: {len(report.created)} new tokens")
        self._publish(report.created)
        return report

    async def run_full_refresh_loop(self) -> None:
        logger.info(f"[DISCOVERY] Full refresh loop started (every {self._full_refresh_sec}s)")
        while True:
            try:
                await self.full_refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[DISCOVERY] Full refresh error: {e}")
            await asyncio.sleep(self._full_refresh_sec)

    async def run_fast_scan_loop(self) -> None:
        logger.info(f"[DISCOVERY] Fast scan loop started (every {self._fast_scan_sec}s)")
        while True:
            await asyncio.sleep(self._fast_scan_sec)
            try:
                await self.fast_scan()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[DISCOVERY] Fast scan error: {e}")

    def stats(self) -> dict:
        records = self._registry.list()
        next_refresh = (
            self.last_full_refresh + self._full_refresh_sec if self.last_full_refresh is not None else None
        )
        return {
            "total": len(records),
            "by_freshness": dict(Counter(r.freshness.value for r in records)),
            "by_exchange": dict(Counter(r.exchange for r in records)),
            "trending": sum(1 for r in records if r.trending),
            "last_refresh": self.last_full_refresh,
            "next_refresh": next_refresh,
            "metrics": self.metrics.get_summary(),
        }

    async def close(self) -> None:
        for source in self._sources:
            try:
                await source.close()
            except Exception as e:
                logger.debug(f"[DISCOVERY] Close {source.name} failed: {e}")
