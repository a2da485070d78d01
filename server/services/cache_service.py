"""Typed, namespaced and metered cache over the Redis backend.

Every lookup degrades to a miss: callers treat None as "go to the store".
Only clear_all_cache can raise, and only for the production guard.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from constants import (
    TRANSCRIPT_KEY_PREFIX,
    VIDEO_METADATA_KEY_PREFIX,
    SEARCH_RESULTS_KEY_PREFIX,
    SEARCH_RESULTS_PATTERN,
)
from core.cache import RedisBackend
from core.config import Settings
from core.logging import get_logger, log_cache_operation
from models.cache import CacheMetrics, CacheStats, MetricsSnapshot
from models.transcript import TranscriptRecord, VideoMetadata

logger = get_logger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


class CacheService:
    """Read-through/write-through cache for transcripts, video metadata and search results."""

    def __init__(self, backend: RedisBackend, settings: Settings,
                 clock: Callable[[], float] = time.perf_counter):
        self.backend = backend
        self.settings = settings
        self.metrics = CacheMetrics()
        self._clock = clock
        backend.add_error_listener(self._on_backend_error)

    def _on_backend_error(self, operation: str, error: Exception) -> None:
        self.metrics.errors += 1

    # ============================================================================
    # Keys
    # ============================================================================

    @staticmethod
    def hash_query(query: str) -> str:
        """Stable 32-bit rolling hash of a search query, rendered in base 36."""
        h = 0
        for char in query:
            h = (h * 31 + ord(char)) & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
        return _to_base36(abs(h))

    @staticmethod
    def transcript_key(video_id: str) -> str:
        return f"{TRANSCRIPT_KEY_PREFIX}{video_id}"

    @staticmethod
    def video_metadata_key(video_id: str) -> str:
        return f"{VIDEO_METADATA_KEY_PREFIX}{video_id}"

    @classmethod
    def search_results_key(cls, query: str) -> str:
        return f"{SEARCH_RESULTS_KEY_PREFIX}{cls.hash_query(query)}"

    # ============================================================================
    # Metered primitives
    # ============================================================================

    async def _lookup(self, key: str, decode: Callable[[str], Any]) -> Optional[Any]:
        self.metrics.total_requests += 1
        start = self._clock()
        raw = await self.backend.get(key)
        self._sample_latency(start)

        if raw is None:
            self.metrics.misses += 1
            log_cache_operation(logger, "get", key, hit=False)
            return None

        try:
            value = decode(raw)
        except (ValidationError, ValueError, TypeError) as e:
            self.metrics.errors += 1
            logger.warning("Discarding undecodable cache entry", cache_key=key, error=str(e))
            return None

        self.metrics.hits += 1
        log_cache_operation(logger, "get", key, hit=True)
        return value

    async def _store(self, key: str, encode: Callable[[], str], ttl: int) -> bool:
        try:
            payload = encode()
        except (ValueError, TypeError) as e:
            self.metrics.errors += 1
            logger.warning("Failed to serialize cache value", cache_key=key, error=str(e))
            return False

        start = self._clock()
        written = await self.backend.set_with_ttl(key, payload, ttl)
        if self.backend.is_connected:
            self.metrics.writes += 1
        self._sample_latency(start)
        return written

    def _sample_latency(self, start: float) -> None:
        # Calls answered by the disabled or cooling-down adapter are not sampled
        if self.backend.is_connected:
            self.metrics.record_latency((self._clock() - start) * 1000)

    # ============================================================================
    # Transcripts
    # ============================================================================

    async def get_transcript(self, video_id: str) -> Optional[TranscriptRecord]:
        return await self._lookup(self.transcript_key(video_id), TranscriptRecord.model_validate_json)

    async def set_transcript(self, video_id: str, transcript: TranscriptRecord,
                             ttl: Optional[int] = None) -> bool:
        return await self._store(
            self.transcript_key(video_id),
            transcript.model_dump_json,
            ttl or self.settings.transcript_cache_ttl,
        )

    # ============================================================================
    # Video metadata
    # ============================================================================

    async def get_video_metadata(self, video_id: str) -> Optional[VideoMetadata]:
        return await self._lookup(self.video_metadata_key(video_id), VideoMetadata.model_validate_json)

    async def set_video_metadata(self, video_id: str, metadata: VideoMetadata,
                                 ttl: Optional[int] = None) -> bool:
        return await self._store(
            self.video_metadata_key(video_id),
            metadata.model_dump_json,
            ttl or self.settings.video_metadata_cache_ttl,
        )

    # ============================================================================
    # Search results
    # ============================================================================

    @staticmethod
    def _decode_results(raw: str) -> List[Dict[str, Any]]:
        results = json.loads(raw)
        if not isinstance(results, list):
            raise ValueError("cached search results are not a list")
        return results

    async def get_search_results(self, query: str) -> Optional[List[Dict[str, Any]]]:
        return await self._lookup(self.search_results_key(query), self._decode_results)

    async def set_search_results(self, query: str, results: List[Dict[str, Any]],
                                 ttl: Optional[int] = None) -> bool:
        return await self._store(
            self.search_results_key(query),
            lambda: json.dumps(results, default=str),
            ttl or self.settings.search_results_cache_ttl,
        )

    # ============================================================================
    # Invalidation
    # ============================================================================

    async def invalidate_transcript(self, video_id: str) -> int:
        """Drop the transcript and its derived video metadata together."""
        deleted = await self.backend.delete(
            self.transcript_key(video_id),
            self.video_metadata_key(video_id),
        )
        logger.info("Invalidated transcript cache", video_id=video_id, deleted=deleted)
        return deleted

    async def invalidate_search_results(self, pattern: Optional[str] = None) -> int:
        """Drop cached search results, optionally narrowed to keys matching `pattern`.

        The pattern is applied inside the search-results namespace, so other
        entity kinds are never touched.
        """
        match = f"{SEARCH_RESULTS_KEY_PREFIX}{pattern}" if pattern else SEARCH_RESULTS_PATTERN
        keys = await self.backend.keys_by_pattern(match)
        if not keys:
            return 0
        deleted = await self.backend.delete(*keys)
        logger.info("Invalidated search result cache", pattern=match, deleted=deleted)
        return deleted

    async def clear_all_cache(self) -> bool:
        """Flush the whole backend.

        Raises:
            DestructiveOperationError: in production
        """
        return await self.backend.flush_all()

    # ============================================================================
    # Metrics and stats
    # ============================================================================

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics = CacheMetrics()
        logger.info("Cache metrics reset")

    async def get_cache_stats(self) -> CacheStats:
        info = await self.backend.info()
        if info is None:
            return CacheStats(error="Cache backend not available")
        return CacheStats(key_count=info.key_count, memory_usage=info.memory_usage_human)
