"""Transcript read paths and summary regeneration over the store and cache.

Reads go through the cache first and populate it on a miss. Writes go to the
store and then refresh the cache; a failed refresh never fails the write.
"""

from typing import Optional, Protocol

from core.database import Database
from core.exceptions import (
    SummarizerUnavailableError,
    TranscriptNotFoundError,
    TranscriptNotReadyError,
)
from core.logging import get_logger
from models.transcript import (
    SummaryOptions,
    SummaryResult,
    TranscriptMetadata,
    TranscriptRecord,
    VideoMetadata,
)
from services.cache_service import CacheService
from services.search_indexing import SearchIndexingService

logger = get_logger(__name__)


class Summarizer(Protocol):
    async def __call__(self, transcript: TranscriptRecord, options: SummaryOptions) -> SummaryResult:
        ...


class TranscriptService:
    def __init__(self, database: Database, cache: CacheService,
                 search_indexing: SearchIndexingService,
                 summarizer: Optional[Summarizer] = None):
        self.database = database
        self.cache = cache
        self.search_indexing = search_indexing
        self.summarizer = summarizer

    async def get_transcript_by_video(self, video_id: str) -> Optional[TranscriptRecord]:
        """Latest completed transcript for a video, cache first."""
        cached = await self.cache.get_transcript(video_id)
        if cached is not None:
            return cached

        record = await self.database.get_transcript_by_video_id(video_id)
        if record is None:
            return None

        await self.cache.set_transcript(video_id, record)
        return record

    async def get_video_metadata(self, video_id: str) -> Optional[VideoMetadata]:
        cached = await self.cache.get_video_metadata(video_id)
        if cached is not None:
            return cached

        record = await self.get_transcript_by_video(video_id)
        if record is None:
            return None

        metadata = VideoMetadata.from_transcript(record)
        await self.cache.set_video_metadata(video_id, metadata)
        return metadata

    async def regenerate_summary(self, transcript_id: str,
                                 options: Optional[SummaryOptions] = None) -> SummaryResult:
        """Generate a new summary, persist it and refresh the transcript cache.

        Raises:
            TranscriptNotFoundError: unknown transcript
            TranscriptNotReadyError: transcript has not completed processing
            SummarizerUnavailableError: no summarizer is configured
        """
        options = options or SummaryOptions()

        record = await self.database.get_transcript(transcript_id)
        if record is None:
            raise TranscriptNotFoundError(transcript_id)
        if not record.is_completed:
            raise TranscriptNotReadyError(transcript_id, record.status)
        if self.summarizer is None:
            raise SummarizerUnavailableError("No summarizer is configured")

        logger.info("Regenerating summary", transcript_id=transcript_id, style=options.style)
        result = await self.summarizer(record, options)

        metadata = record.metadata.model_copy(update={
            "summary_style": result.style,
            "summary_confidence": result.confidence,
            "summary_word_count": result.word_count,
            "key_points": list(result.key_points),
            "topics": list(result.topics),
            "last_summary_regeneration": result.generated_at,
        })
        updated = await self.database.update_transcript(
            transcript_id,
            summary=result.summary,
            metadata=TranscriptMetadata.model_validate(metadata.model_dump()),
        )

        await self._refresh_cache(updated)

        logger.info("Summary regenerated", transcript_id=transcript_id, style=result.style)
        return result

    async def _refresh_cache(self, record: TranscriptRecord) -> None:
        try:
            await self.cache.invalidate_transcript(record.video_id)
            latest = await self.database.get_transcript(record.id)
            if latest is not None:
                await self.cache.set_transcript(record.video_id, latest)
        except Exception as e:
            logger.warning("Cache refresh after summary regeneration failed",
                           transcript_id=record.id, video_id=record.video_id, error=str(e))

    async def delete_transcript(self, transcript_id: str) -> bool:
        """Delete a transcript with its search index and cached views. False if absent."""
        record = await self.database.get_transcript(transcript_id)
        if record is None:
            return False

        await self.search_indexing.remove_index(transcript_id)
        deleted = await self.database.delete_transcript(transcript_id)

        await self.cache.invalidate_transcript(record.video_id)
        await self.cache.invalidate_search_results()

        logger.info("Deleted transcript", transcript_id=transcript_id, video_id=record.video_id)
        return deleted
