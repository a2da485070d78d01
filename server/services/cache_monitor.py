"""Cache health monitoring.

Turns cache metrics and backend connectivity into an operator-facing health
report, on a timer that runs independently of request handling.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from core.cache import RedisBackend
from core.config import Settings
from core.logging import get_logger, log_health_report
from models.cache import (
    BackendHealth,
    CacheHealthReport,
    CacheStats,
    HealthStatus,
    PerformanceRating,
    PerformanceStats,
    PerformanceSummary,
)
from services.cache_service import CacheService

logger = get_logger(__name__)


def _fmt(value: float) -> str:
    """Render a number without a trailing '.0' (50.0 -> '50', 33.33 -> '33.33')."""
    return f"{value:.2f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class HealthThresholds:
    min_hit_rate: float = 70.0
    max_latency_ms: float = 100.0
    max_error_rate: float = 5.0
    key_count_warning: int = 10000

    @classmethod
    def from_settings(cls, settings: Settings) -> "HealthThresholds":
        return cls(
            min_hit_rate=settings.cache_min_hit_rate,
            max_latency_ms=settings.cache_max_latency_ms,
            max_error_rate=settings.cache_max_error_rate,
            key_count_warning=settings.cache_key_count_warning,
        )


@dataclass
class HealthAssessment:
    status: HealthStatus = HealthStatus.HEALTHY
    alerts: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def classify_health(connected: bool, hit_rate: float, average_latency: float,
                    error_rate: float, key_count: int,
                    thresholds: HealthThresholds) -> HealthAssessment:
    """Compute the health status for one check.

    A disconnected backend is reported as unavailable and nothing else is
    evaluated. Otherwise each threshold can only raise the severity, never
    lower it.
    """
    result = HealthAssessment()

    if not connected:
        result.status = HealthStatus.UNAVAILABLE
        result.alerts.append("Redis connection is not available")
        result.recommendations.append("Check Redis server status and connection configuration")
        return result

    if hit_rate < thresholds.min_hit_rate:
        result.status = result.status.escalate(HealthStatus.DEGRADED)
        result.alerts.append(f"Cache hit rate is low: {_fmt(hit_rate)}%")
        result.recommendations.append("Consider increasing cache TTL or reviewing cache strategy")

    if average_latency > thresholds.max_latency_ms:
        result.status = result.status.escalate(HealthStatus.DEGRADED)
        result.alerts.append(f"Cache latency is high: {_fmt(average_latency)}ms")
        result.recommendations.append("Check Redis server performance and network connectivity")

    if error_rate > thresholds.max_error_rate:
        result.status = result.status.escalate(HealthStatus.UNHEALTHY)
        result.alerts.append(f"Cache error rate is high: {error_rate:.2f}%")
        result.recommendations.append("Investigate cache errors and Redis server logs")

    if key_count > thresholds.key_count_warning:
        result.recommendations.append("Consider implementing cache cleanup policies for large key counts")

    return result


class CacheMonitor:
    """Periodic cache health checker.

    Follows the same start/stop task pattern as the other background loops:
    a single asyncio.Task handle, cancelled on stop.
    """

    def __init__(self, cache_service: CacheService, backend: RedisBackend, settings: Settings):
        self.cache_service = cache_service
        self.backend = backend
        self.settings = settings
        self.thresholds = HealthThresholds.from_settings(settings)
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._interval: float = settings.monitoring_interval_seconds
        self._last_report: Optional[CacheHealthReport] = None

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start_monitoring(self, interval: Optional[float] = None) -> None:
        """Start the health check loop. A second call while running is a no-op."""
        if self.is_running:
            logger.info("Cache monitoring already running", interval_seconds=self._interval)
            return

        self._interval = interval if interval is not None else self.settings.monitoring_interval_seconds
        self._running = True
        self._task = asyncio.create_task(self._monitor_loop())
        logger.info("Cache monitoring started", interval_seconds=self._interval)

    async def stop_monitoring(self) -> None:
        """Cancel the loop. Safe to call when not running."""
        was_running = self._task is not None
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if was_running:
            logger.info("Cache monitoring stopped")

    async def _monitor_loop(self) -> None:
        """Immediate check, then one check per interval."""
        while self._running:
            try:
                await self.perform_health_check()
            except Exception as e:
                logger.error("Cache health check tick failed", error=str(e))
            await asyncio.sleep(self._interval)

    async def perform_health_check(self) -> CacheHealthReport:
        """Build, store and log a health report. Never raises."""
        try:
            redis_health = await self.backend.ping()
            metrics = self.cache_service.get_metrics()
            error_rate = self.cache_service.metrics.error_rate
            memory = await self.cache_service.get_cache_stats()

            assessment = classify_health(
                connected=redis_health.connected,
                hit_rate=metrics.hit_rate,
                average_latency=metrics.average_latency,
                error_rate=error_rate,
                key_count=memory.key_count,
                thresholds=self.thresholds,
            )

            report = CacheHealthReport(
                status=assessment.status,
                redis=redis_health,
                performance=PerformanceStats(
                    hit_rate=metrics.hit_rate,
                    average_latency=metrics.average_latency,
                    error_rate=round(error_rate, 2),
                    total_requests=metrics.total_requests,
                ),
                memory=memory,
                alerts=assessment.alerts,
                recommendations=assessment.recommendations,
            )
        except Exception as e:
            logger.error("Cache health check failed", error=str(e), exc_info=True)
            report = CacheHealthReport(
                status=HealthStatus.UNHEALTHY,
                redis=BackendHealth(connected=False, error=str(e) or type(e).__name__),
                performance=PerformanceStats(),
                memory=CacheStats(error="Unable to retrieve memory stats"),
                alerts=["Cache monitoring failed"],
                recommendations=["Check cache monitoring service and Redis connectivity"],
            )
            self._last_report = report
            return report

        self._last_report = report
        log_health_report(logger, report, include_recommendations=not self.settings.is_production)
        return report

    def get_last_health_report(self) -> Optional[CacheHealthReport]:
        return self._last_report

    def get_performance_summary(self) -> PerformanceSummary:
        """Coarse rating for dashboards, from hit rate and latency bands."""
        metrics = self.cache_service.get_metrics()
        insights = []
        overall = PerformanceRating.EXCELLENT

        if metrics.hit_rate >= 90:
            insights.append("Excellent cache hit rate - cache is very effective")
        elif metrics.hit_rate >= 70:
            insights.append("Good cache hit rate - cache is working well")
            overall = PerformanceRating.GOOD
        elif metrics.hit_rate >= 50:
            insights.append("Fair cache hit rate - consider optimizing cache strategy")
            overall = PerformanceRating.FAIR
        else:
            insights.append("Poor cache hit rate - cache strategy needs improvement")
            overall = PerformanceRating.POOR

        if metrics.average_latency < 10:
            insights.append("Excellent cache response time")
        elif metrics.average_latency < 50:
            insights.append("Good cache response time")
        elif metrics.average_latency < 100:
            insights.append("Acceptable cache response time")
            if overall == PerformanceRating.EXCELLENT:
                overall = PerformanceRating.GOOD
        else:
            insights.append("High cache latency - check Redis performance")
            overall = PerformanceRating.POOR

        if metrics.total_requests > 1000:
            insights.append(f"High cache usage: {metrics.total_requests} requests processed")
        elif metrics.total_requests > 100:
            insights.append(f"Moderate cache usage: {metrics.total_requests} requests processed")
        else:
            insights.append(f"Low cache usage: {metrics.total_requests} requests processed")

        return PerformanceSummary(overall=overall, metrics=metrics, insights=insights)
