"""Cache metrics and health report models.

All models are in-memory only and JSON-serializable via to_dict() using the
camelCase field names of the operator API.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


class HealthStatus(str, Enum):
    """Overall cache health, ordered by severity.

    healthy < degraded < unhealthy. unavailable is reported on its own when
    the backend cannot be reached and performance is not evaluated.
    """
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNAVAILABLE = "unavailable"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def escalate(self, other: "HealthStatus") -> "HealthStatus":
        """Return the more severe of the two statuses."""
        return other if other.severity > self.severity else self


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
    HealthStatus.UNAVAILABLE: 3,
}


class PerformanceRating(str, Enum):
    """Coarse rating for dashboards."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass
class BackendInfo:
    """Result of the backend INFO/DBSIZE introspection."""
    key_count: int = 0
    memory_usage_human: Optional[str] = None


@dataclass
class BackendHealth:
    """Connectivity probe result. latency is in milliseconds."""
    connected: bool
    latency: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"connected": self.connected}
        if self.latency is not None:
            data["latency"] = self.latency
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class CacheMetrics:
    """Mutable cache counters.

    average_latency is an incremental mean over every get and set that
    reached the backend (latency_samples of them), not a sliding window:
    long-lived processes are dominated by early samples until reset.
    """
    hits: int = 0
    misses: int = 0
    errors: int = 0
    total_requests: int = 0
    average_latency: float = 0.0
    writes: int = 0
    latency_samples: int = 0

    def record_latency(self, latency_ms: float) -> None:
        """Fold one backend round-trip sample into the running average."""
        self.latency_samples += 1
        n = self.latency_samples
        self.average_latency = (self.average_latency * (n - 1) + latency_ms) / n

    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return round(self.hits / self.total_requests * 100, 2)

    @property
    def error_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.errors / self.total_requests * 100

    def snapshot(self) -> "MetricsSnapshot":
        return MetricsSnapshot(
            hits=self.hits,
            misses=self.misses,
            errors=self.errors,
            total_requests=self.total_requests,
            average_latency=round(self.average_latency, 2),
            writes=self.writes,
            hit_rate=self.hit_rate,
        )


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of CacheMetrics plus derived hit rate."""
    hits: int
    misses: int
    errors: int
    total_requests: int
    average_latency: float
    writes: int
    hit_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "totalRequests": self.total_requests,
            "averageLatency": self.average_latency,
            "writes": self.writes,
            "hitRate": self.hit_rate,
        }


@dataclass
class CacheStats:
    """Key count and memory usage of the backend."""
    key_count: int = 0
    memory_usage: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"keyCount": self.key_count}
        if self.memory_usage is not None:
            data["memoryUsage"] = self.memory_usage
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class PerformanceStats:
    hit_rate: float = 0.0
    average_latency: float = 0.0
    error_rate: float = 0.0
    total_requests: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hitRate": self.hit_rate,
            "averageLatency": self.average_latency,
            "errorRate": self.error_rate,
            "totalRequests": self.total_requests,
        }


@dataclass
class CacheHealthReport:
    """Snapshot produced by each health check. Never persisted."""
    status: HealthStatus
    redis: BackendHealth
    performance: PerformanceStats
    memory: CacheStats
    alerts: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "redis": self.redis.to_dict(),
            "performance": self.performance.to_dict(),
            "memory": self.memory.to_dict(),
            "alerts": list(self.alerts),
            "recommendations": list(self.recommendations),
        }


@dataclass
class PerformanceSummary:
    overall: PerformanceRating
    metrics: MetricsSnapshot
    insights: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.value,
            "metrics": self.metrics.to_dict(),
            "insights": list(self.insights),
        }
