"""Health check utilities for the /health endpoint.

Provides uptime tracking and an aggregate status over the store, the cache
backend and the last cache health report.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.cache import RedisBackend
    from core.lifecycle import CacheLifecycle
    from services.cache_monitor import CacheMonitor

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_database(database: "Database") -> bool:
    """Check database connectivity."""
    return await database.ping()


async def get_health_status(
    database: "Database",
    backend: "RedisBackend",
    monitor: "CacheMonitor",
    lifecycle: "CacheLifecycle",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    The cache is optional, so only a failed database makes the service
    unhealthy; a missing cache only degrades it.
    """
    db_healthy = await check_database(database)
    redis_health = await backend.ping()
    last_report = monitor.get_last_health_report()

    if not db_healthy:
        overall_status = "unhealthy"
    elif not redis_health.connected:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "status": overall_status,
        "environment": settings.environment,
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
            "cache": redis_health.to_dict(),
        },
        "cache_health": last_report.status.value if last_report else None,
        "cache_system": lifecycle.status(),
        "features": {
            "redis": settings.redis_enabled,
            "cache_monitoring": settings.cache_monitoring_enabled,
        },
    }
