"""Tests for cache health classification and the monitoring loop."""

import asyncio

import pytest

from models.cache import HealthStatus, PerformanceRating
from models.transcript import TranscriptRecord
from services.cache_monitor import HealthThresholds, classify_health

THRESHOLDS = HealthThresholds()


async def _settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestClassifyHealth:
    def test_healthy_when_all_thresholds_met(self):
        result = classify_health(True, 95.0, 5.0, 0.0, 10, THRESHOLDS)

        assert result.status is HealthStatus.HEALTHY
        assert result.alerts == []
        assert result.recommendations == []

    def test_low_hit_rate_degrades(self):
        result = classify_health(True, 50.0, 5.0, 0.0, 10, THRESHOLDS)

        assert result.status is HealthStatus.DEGRADED
        assert result.alerts == ["Cache hit rate is low: 50%"]
        assert result.recommendations == ["Consider increasing cache TTL or reviewing cache strategy"]

    def test_high_latency_degrades(self):
        result = classify_health(True, 95.0, 150.5, 0.0, 10, THRESHOLDS)

        assert result.status is HealthStatus.DEGRADED
        assert result.alerts == ["Cache latency is high: 150.5ms"]

    def test_most_severe_condition_wins(self):
        result = classify_health(True, 50.0, 5.0, 10.0, 10, THRESHOLDS)

        assert result.status is HealthStatus.UNHEALTHY
        assert result.alerts == [
            "Cache hit rate is low: 50%",
            "Cache error rate is high: 10.00%",
        ]

    def test_later_threshold_never_lowers_status(self):
        result = classify_health(True, 50.0, 200.0, 10.0, 10, THRESHOLDS)

        assert result.status is HealthStatus.UNHEALTHY
        assert len(result.alerts) == 3

    @pytest.mark.parametrize("hit_rate, error_rate", [(0.0, 100.0), (100.0, 0.0), (50.0, 10.0)])
    def test_disconnected_is_unavailable_regardless_of_metrics(self, hit_rate, error_rate):
        result = classify_health(False, hit_rate, 500.0, error_rate, 50000, THRESHOLDS)

        assert result.status is HealthStatus.UNAVAILABLE
        assert result.alerts == ["Redis connection is not available"]
        assert result.recommendations == ["Check Redis server status and connection configuration"]

    def test_large_key_count_only_recommends(self):
        result = classify_health(True, 95.0, 5.0, 0.0, 10001, THRESHOLDS)

        assert result.status is HealthStatus.HEALTHY
        assert result.alerts == []
        assert result.recommendations == [
            "Consider implementing cache cleanup policies for large key counts"
        ]

    def test_thresholds_from_settings(self, make_settings):
        settings = make_settings(cache_min_hit_rate=80, cache_max_latency_ms=20,
                                 cache_max_error_rate=1, cache_key_count_warning=5)

        thresholds = HealthThresholds.from_settings(settings)

        assert thresholds == HealthThresholds(80, 20, 1, 5)


class TestHealthCheck:
    async def test_healthy_report(self, cache_monitor, cache_service):
        record = TranscriptRecord(id="t-1", video_id="abc", title="A talk", status="completed")
        await cache_service.set_transcript("abc", record)
        for _ in range(10):
            await cache_service.get_transcript("abc")

        report = await cache_monitor.perform_health_check()

        assert report.status is HealthStatus.HEALTHY
        assert report.redis.connected is True
        assert report.performance.hit_rate == 100.0
        assert report.performance.total_requests == 10
        assert report.memory.key_count == 1
        assert cache_monitor.get_last_health_report() is report

        data = report.to_dict()
        assert set(data) == {"status", "timestamp", "redis", "performance", "memory",
                             "alerts", "recommendations"}
        assert set(data["performance"]) == {"hitRate", "averageLatency", "errorRate", "totalRequests"}

    async def test_report_unavailable_when_disconnected(self, cache_monitor, fake_redis):
        fake_redis.fail_on.add("ping")

        report = await cache_monitor.perform_health_check()

        assert report.status is HealthStatus.UNAVAILABLE
        assert report.redis.connected is False
        assert report.memory.error == "Cache backend not available"

    async def test_error_rate_makes_report_unhealthy(self, cache_monitor, cache_service, backend, fake_redis):
        await backend.connect()
        fake_redis.fail_on.add("get")
        await cache_service.get_transcript("abc")
        fake_redis.fail_on.clear()

        report = await cache_monitor.perform_health_check()

        assert report.status is HealthStatus.UNHEALTHY
        assert report.performance.error_rate == 100.0
        assert "Cache error rate is high: 100.00%" in report.alerts

    async def test_internal_failure_produces_unhealthy_report(self, cache_monitor, backend, monkeypatch):
        async def broken_ping():
            raise RuntimeError("boom")

        monkeypatch.setattr(backend, "ping", broken_ping)

        report = await cache_monitor.perform_health_check()

        assert report.status is HealthStatus.UNHEALTHY
        assert report.redis.connected is False
        assert report.redis.error == "boom"
        assert report.performance.hit_rate == 0
        assert report.performance.error_rate == 0
        assert report.performance.total_requests == 0
        assert report.memory.error == "Unable to retrieve memory stats"
        assert report.alerts == ["Cache monitoring failed"]
        assert report.recommendations == ["Check cache monitoring service and Redis connectivity"]
        assert cache_monitor.get_last_health_report() is report

    async def test_no_report_before_first_check(self, cache_monitor):
        assert cache_monitor.get_last_health_report() is None


class TestMonitoringLoop:
    async def test_start_twice_keeps_single_task(self, cache_monitor):
        await cache_monitor.start_monitoring(3600)
        first_task = cache_monitor._task
        await cache_monitor.start_monitoring(3600)

        assert cache_monitor._task is first_task
        assert cache_monitor.is_running is True

        await cache_monitor.stop_monitoring()
        assert cache_monitor.is_running is False
        assert first_task.cancelled()

    async def test_stop_when_not_running_is_safe(self, cache_monitor):
        await cache_monitor.stop_monitoring()
        await cache_monitor.stop_monitoring()
        assert cache_monitor.is_running is False

    async def test_first_check_runs_immediately(self, cache_monitor):
        await cache_monitor.start_monitoring(3600)
        await _settle()

        assert cache_monitor.get_last_health_report() is not None
        await cache_monitor.stop_monitoring()

    async def test_loop_repeats_on_interval(self, cache_monitor, monkeypatch):
        calls = []
        original = cache_monitor.perform_health_check

        async def counting_check():
            calls.append(1)
            return await original()

        monkeypatch.setattr(cache_monitor, "perform_health_check", counting_check)

        await cache_monitor.start_monitoring(0.01)
        await asyncio.sleep(0.1)
        await cache_monitor.stop_monitoring()

        assert len(calls) >= 2

    async def test_tick_failure_does_not_end_loop(self, cache_monitor, monkeypatch):
        calls = []

        async def failing_check():
            calls.append(1)
            raise RuntimeError("tick failed")

        monkeypatch.setattr(cache_monitor, "perform_health_check", failing_check)

        await cache_monitor.start_monitoring(0.01)
        await asyncio.sleep(0.1)

        assert cache_monitor.is_running is True
        await cache_monitor.stop_monitoring()
        assert len(calls) >= 2

    async def test_default_interval_follows_environment(self, make_settings, cache_service, backend):
        from services.cache_monitor import CacheMonitor

        monitor = CacheMonitor(cache_service, backend, make_settings(environment="production"))
        await monitor.start_monitoring()

        assert monitor._interval == 300.0
        await monitor.stop_monitoring()


class TestPerformanceSummary:
    @pytest.mark.parametrize("hits, latency, overall", [
        (95, 5.0, PerformanceRating.EXCELLENT),
        (95, 75.0, PerformanceRating.GOOD),
        (80, 5.0, PerformanceRating.GOOD),
        (60, 20.0, PerformanceRating.FAIR),
        (60, 75.0, PerformanceRating.FAIR),
        (20, 5.0, PerformanceRating.POOR),
        (95, 150.0, PerformanceRating.POOR),
    ])
    def test_overall_rating(self, cache_monitor, cache_service, hits, latency, overall):
        cache_service.metrics.hits = hits
        cache_service.metrics.misses = 100 - hits
        cache_service.metrics.total_requests = 100
        cache_service.metrics.average_latency = latency

        summary = cache_monitor.get_performance_summary()

        assert summary.overall is overall
        assert len(summary.insights) == 3

    @pytest.mark.parametrize("total, insight", [
        (5, "Low cache usage: 5 requests processed"),
        (500, "Moderate cache usage: 500 requests processed"),
        (5000, "High cache usage: 5000 requests processed"),
    ])
    def test_usage_insight(self, cache_monitor, cache_service, total, insight):
        cache_service.metrics.total_requests = total

        summary = cache_monitor.get_performance_summary()

        assert summary.insights[-1] == insight
        assert summary.to_dict()["metrics"]["totalRequests"] == total
