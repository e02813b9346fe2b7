"""Centralized metrics tracking for observability.

Tracks custody API calls and signing latency per blockchain.
"""

import asyncio
import bisect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()

# Upper bounds (ms) of the sign.time histogram buckets
SIGN_DURATION_BUCKETS_MS: List[float] = [
    250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000, 300000,
]


@dataclass
class APICallMetrics:
    """Metrics for a single custody endpoint."""
    endpoint: str
    call_count: int = 0
    success_count: int = 0
    error_count: int = 0
    server_error_count: int = 0  # 5xx
    total_latency_ms: float = 0.0
    last_call_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    @property
    def avg_latency_ms(self) -> float:
        if self.call_count == 0:
            return 0.0
        return self.total_latency_ms / self.call_count

    @property
    def success_rate(self) -> float:
        if self.call_count == 0:
            return 1.0
        return self.success_count / self.call_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "call_count": self.call_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "server_error_count": self.server_error_count,
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "success_rate": round(self.success_rate, 4),
            "last_call_at": self.last_call_at.isoformat() if self.last_call_at else None,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
        }


@dataclass
class Histogram:
    """Cumulative-bucket histogram in the Prometheus style."""
    name: str
    unit: str
    bounds: List[float] = field(default_factory=lambda: list(SIGN_DURATION_BUCKETS_MS))
    counts: List[int] = field(default_factory=list)
    count: int = 0
    total: float = 0.0

    def __post_init__(self):
        if not self.counts:
            # one slot per bound plus +Inf
            self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float) -> None:
        self.counts[bisect.bisect_left(self.bounds, value)] += 1
        self.count += 1
        self.total += value

    def to_dict(self) -> Dict[str, Any]:
        buckets = {}
        running = 0
        for bound, n in zip(self.bounds, self.counts):
            running += n
            buckets[str(bound)] = running
        buckets["+Inf"] = self.count
        return {
            "name": self.name,
            "unit": self.unit,
            "count": self.count,
            "sum": round(self.total, 2),
            "buckets": buckets,
        }


class MetricsCollector:
    """Singleton metrics collector for the application."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._api_metrics: Dict[str, APICallMetrics] = {}
        self._sign_durations: Dict[str, Histogram] = {}
        self._started_at = datetime.now(timezone.utc)

    # ==================== API Metrics ====================

    async def record_api_call(
        self,
        endpoint: str,
        latency_ms: float,
        success: bool,
        status_code: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Record a custody API call result."""
        async with self._lock:
            if endpoint not in self._api_metrics:
                self._api_metrics[endpoint] = APICallMetrics(endpoint=endpoint)

            m = self._api_metrics[endpoint]
            m.call_count += 1
            m.total_latency_ms += latency_ms
            m.last_call_at = datetime.now(timezone.utc)

            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error_message
                m.last_error_at = datetime.now(timezone.utc)
                if status_code and status_code >= 500:
                    m.server_error_count += 1

        log_data = {
            "endpoint": endpoint,
            "latency_ms": round(latency_ms, 2),
            "success": success,
            "status_code": status_code,
        }
        if error_message:
            log_data["error"] = error_message[:200]

        if success:
            logger.debug("Custody call completed", **log_data)
        else:
            logger.warning("Custody call failed", **log_data)

    def get_api_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get all API metrics."""
        return {
            endpoint: m.to_dict()
            for endpoint, m in self._api_metrics.items()
        }

    # ==================== Signing Latency ====================

    async def record_sign_duration(self, blockchain: str, duration_ms: float) -> None:
        """Observe the submit-to-terminal time of one custody transaction."""
        async with self._lock:
            if blockchain not in self._sign_durations:
                self._sign_durations[blockchain] = Histogram(name="sign.time", unit="ms")
            self._sign_durations[blockchain].observe(duration_ms)

        logger.debug("Sign duration recorded", blockchain=blockchain, duration_ms=round(duration_ms, 2))

    def get_sign_durations(self) -> Dict[str, Dict[str, Any]]:
        return {
            blockchain: h.to_dict()
            for blockchain, h in self._sign_durations.items()
        }

    def snapshot(self) -> Dict[str, Any]:
        """Everything the /metrics endpoint serves."""
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": (datetime.now(timezone.utc) - self._started_at).total_seconds(),
            "custody_endpoints": self.get_api_metrics(),
            "sign_duration_ms": self.get_sign_durations(),
        }

    async def reset(self) -> None:
        """Reset all metrics (for testing)."""
        async with self._lock:
            self._api_metrics.clear()
            self._sign_durations.clear()
            self._started_at = datetime.now(timezone.utc)


# Lazy singleton
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get or create the metrics collector singleton."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
