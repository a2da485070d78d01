"""Transcript, video and search routes."""

from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from core.container import container
from core.exceptions import (
    SummarizerUnavailableError,
    TranscriptNotFoundError,
    TranscriptNotReadyError,
)
from core.logging import get_logger
from models.transcript import SummaryOptions, SummaryStyle
from services.search_indexing import SearchIndexingService
from services.transcripts import TranscriptService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["transcripts"])


class RegenerateSummaryRequest(BaseModel):
    style: SummaryStyle = "detailed"
    max_length: Optional[int] = Field(default=None, ge=50, le=1000, alias="maxLength")
    include_key_points: bool = Field(default=True, alias="includeKeyPoints")
    focus_on_topics: Optional[List[str]] = Field(default=None, alias="focusOnTopics")

    model_config = {"populate_by_name": True}


class IndexRequest(BaseModel):
    mode: Literal["unindexed", "all"] = "unindexed"
    batch_size: Optional[int] = Field(default=None, ge=1, alias="batchSize")

    model_config = {"populate_by_name": True}


@router.get("/video/{video_id}")
async def get_video(
    video_id: str,
    transcripts: TranscriptService = Depends(lambda: container.transcript_service())
):
    """Latest completed transcript for a video, with its derived metadata."""
    record = await transcripts.get_transcript_by_video(video_id)
    if record is None:
        return ORJSONResponse(status_code=404, content={"error": "Video not found or not transcribed yet"})

    metadata = await transcripts.get_video_metadata(video_id)
    return {
        "video": metadata.model_dump(mode="json", by_alias=True) if metadata else None,
        "transcript": record.model_dump(mode="json", by_alias=True),
    }


@router.post("/transcript/{transcript_id}/regenerate-summary")
async def regenerate_summary(
    transcript_id: str,
    request: Optional[RegenerateSummaryRequest] = Body(default=None),
    transcripts: TranscriptService = Depends(lambda: container.transcript_service())
):
    """Regenerate a transcript's summary and refresh its cached copy."""
    request = request or RegenerateSummaryRequest()
    options = SummaryOptions(
        style=request.style,
        max_length=request.max_length,
        include_key_points=request.include_key_points,
        focus_on_topics=request.focus_on_topics,
    )

    try:
        result = await transcripts.regenerate_summary(transcript_id, options)
    except TranscriptNotFoundError:
        return ORJSONResponse(status_code=404, content={"error": "Transcript not found"})
    except TranscriptNotReadyError as e:
        return ORJSONResponse(status_code=202, content={
            "error": "Transcript not ready",
            "status": e.status,
            "message": "Transcript is still processing",
        })
    except SummarizerUnavailableError as e:
        return ORJSONResponse(status_code=503, content={"error": str(e)})

    return {
        "summary": result.summary,
        "keyPoints": result.key_points,
        "topics": result.topics,
        "confidence": result.confidence,
        "style": result.style,
        "wordCount": result.word_count,
        "message": f"{result.style} summary regenerated successfully",
    }


@router.delete("/transcript/{transcript_id}")
async def delete_transcript(
    transcript_id: str,
    transcripts: TranscriptService = Depends(lambda: container.transcript_service())
):
    deleted = await transcripts.delete_transcript(transcript_id)
    if not deleted:
        return ORJSONResponse(status_code=404, content={"error": "Transcript not found"})
    return {"success": True}


# ============================================================================
# Search
# ============================================================================

@router.get("/search")
async def search_transcripts(
    q: str = Query(min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
    indexing: SearchIndexingService = Depends(lambda: container.search_indexing())
):
    results = await indexing.search(q, limit)
    return {"query": q, "results": results}


@router.get("/search/index/stats")
async def get_index_stats(
    indexing: SearchIndexingService = Depends(lambda: container.search_indexing())
):
    stats = await indexing.get_index_stats()
    return stats.to_dict()


@router.post("/search/index")
async def build_index(
    request: Optional[IndexRequest] = Body(default=None),
    indexing: SearchIndexingService = Depends(lambda: container.search_indexing())
):
    """Index unindexed transcripts, or rebuild the whole index."""
    request = request or IndexRequest()
    if request.mode == "all":
        indexed = await indexing.reindex_all_transcripts(request.batch_size)
    else:
        indexed = await indexing.index_all_unindexed_transcripts()
    return {"success": True, "mode": request.mode, "indexed": indexed}
