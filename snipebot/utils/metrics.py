"""Discovery metrics: per-source call counts, failures and latency.

Accumulated by the aggregator's fan-out and read by the stats reporter.
"""

import time
from dataclasses import dataclass, field


@dataclass
class SourceMetrics:
    """Counters for a single market source."""

    total_calls: int = 0
    failures: int = 0
    timeouts: int = 0
    listings: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    last_error: str = ""

    @property
    def avg_latency_ms(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_latency_ms / self.total_calls

    @property
    def error_rate_pct(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.failures / self.total_calls * 100


@dataclass
class DiscoveryMetrics:
    """Aggregate counters across all sources and refresh cycles."""

    sources: dict[str, SourceMetrics] = field(default_factory=dict)
    full_refreshes: int = 0
    fast_scans: int = 0
    tokens_created: int = 0
    tokens_evicted: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def _source(self, name: str) -> SourceMetrics:
        if name not in self.sources:
            self.sources[name] = SourceMetrics()
        return self.sources[name]

    def record_success(self, name: str, latency_ms: float, listings: int) -> None:
        m = self._source(name)
        m.total_calls += 1
        m.listings += listings
        m.total_latency_ms += latency_ms
        m.max_latency_ms = max(m.max_latency_ms, latency_ms)

    def record_failure(self, name: str, latency_ms: float, error: str, *, timeout: bool = False) -> None:
        m = self._source(name)
        m.total_calls += 1
        m.failures += 1
        if timeout:
            m.timeouts += 1
        m.total_latency_ms += latency_ms
        m.max_latency_ms = max(m.max_latency_ms, latency_ms)
        m.last_error = error

    def get_summary(self) -> dict:
        return {
            "uptime_sec": round(time.monotonic() - self.started_at),
            "full_refreshes": self.full_refreshes,
            "fast_scans": self.fast_scans,
            "tokens_created": self.tokens_created,
            "tokens_evicted": self.tokens_evicted,
            "sources": {
                name: {
                    "calls": m.total_calls,
                    "failures": m.failures,
                    "timeouts": m.timeouts,
                    "listings": m.listings,
                    "avg_latency_ms": round(m.avg_latency_ms),
                    "error_rate_pct": round(m.error_rate_pct, 1),
                    "last_error": m.last_error,
                }
                for name, m in self.sources.items()
            },
        }
