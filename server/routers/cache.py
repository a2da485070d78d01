"""Cache monitoring and management routes."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from core.cache import RedisBackend
from core.container import container
from core.exceptions import DestructiveOperationError
from core.logging import get_logger
from services.cache_monitor import CacheMonitor
from services.cache_service import CacheService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


class CacheActionRequest(BaseModel):
    action: str
    video_id: Optional[str] = Field(default=None, alias="videoId")
    pattern: Optional[str] = None

    model_config = {"populate_by_name": True}


def _error(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content={"error": message})


@router.get("")
async def get_cache_info(
    action: Optional[str] = None,
    cache: CacheService = Depends(lambda: container.cache_service()),
    monitor: CacheMonitor = Depends(lambda: container.cache_monitor()),
    backend: RedisBackend = Depends(lambda: container.cache_backend())
):
    """Cache health, metrics, stats or performance summary."""
    if action == "health":
        report = await monitor.perform_health_check()
        return report.to_dict()

    if action == "metrics":
        return cache.get_metrics().to_dict()

    if action == "stats":
        stats = await cache.get_cache_stats()
        return stats.to_dict()

    if action == "performance":
        return monitor.get_performance_summary().to_dict()

    redis_health = await backend.ping()
    stats = await cache.get_cache_stats()
    return {
        "redis": redis_health.to_dict(),
        "performance": cache.get_metrics().to_dict(),
        "cache": stats.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("")
async def manage_cache(
    request: CacheActionRequest,
    cache: CacheService = Depends(lambda: container.cache_service())
):
    """Invalidation, flush and metrics reset."""
    if request.action == "invalidate-transcript":
        if not request.video_id:
            return _error(400, "videoId is required for transcript invalidation")
        await cache.invalidate_transcript(request.video_id)
        return {"success": True, "message": f"Invalidated cache for video: {request.video_id}"}

    if request.action == "invalidate-search":
        deleted = await cache.invalidate_search_results(request.pattern)
        return {"success": True, "message": "Invalidated search results cache", "deleted": deleted}

    if request.action == "clear-all":
        try:
            await cache.clear_all_cache()
        except DestructiveOperationError as e:
            logger.warning("Refused cache flush", environment=e.environment)
            return _error(403, "Clear all cache is not allowed in production")
        return {"success": True, "message": "Cleared all cache entries"}

    if request.action == "reset-metrics":
        cache.reset_metrics()
        return {"success": True, "message": "Reset cache metrics"}

    return _error(400, "Invalid action")


@router.delete("")
async def clear_cache_entries(
    video_id: Optional[str] = Query(default=None, alias="videoId"),
    type: Optional[str] = None,
    cache: CacheService = Depends(lambda: container.cache_service())
):
    """Clear one video's cached views, or all cached search results."""
    if video_id:
        await cache.invalidate_transcript(video_id)
        return {"success": True, "message": f"Cleared cache for video: {video_id}"}

    if type == "search":
        await cache.invalidate_search_results()
        return {"success": True, "message": "Cleared all search results cache"}

    return _error(400, "videoId or type parameter is required")
