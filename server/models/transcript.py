"""Typed transcript records exchanged between the store, the cache and callers.

The relational store keeps utterances and metadata as JSON columns. They are
decoded into these models exactly once, in core.database, so nothing else in
the codebase re-interprets loosely typed JSON.
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from constants import TRANSCRIPT_STATUS_COMPLETED

SummaryStyle = Literal["brief", "detailed", "executive", "educational"]

TRANSCRIPT_METADATA_VERSION = 1

# camelCase on the wire; field names stay valid input, so cached payloads decode either way
CAMEL_CASE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Utterance(BaseModel):
    """One speaker turn of a transcript."""
    model_config = ConfigDict(extra="ignore", **CAMEL_CASE)

    text: str = ""
    start: Optional[float] = None
    end: Optional[float] = None
    speaker: Optional[int] = None
    confidence: Optional[float] = None


class TranscriptMetadata(BaseModel):
    """Versioned summary metadata stored in the transcript's JSON column."""
    model_config = ConfigDict(extra="ignore", **CAMEL_CASE)

    version: int = TRANSCRIPT_METADATA_VERSION
    summary_style: Optional[SummaryStyle] = None
    summary_confidence: Optional[float] = None
    summary_word_count: Optional[int] = None
    summary_source: Optional[str] = None
    key_points: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    last_summary_regeneration: Optional[datetime] = None


class TranscriptRecord(BaseModel):
    """Transcript as seen by every layer above the store."""
    model_config = CAMEL_CASE

    id: str
    video_id: str
    title: str
    description: Optional[str] = None
    summary: Optional[str] = None
    language: str = "en"
    duration: Optional[float] = None
    status: str
    utterances: List[Utterance] = Field(default_factory=list)
    metadata: TranscriptMetadata = Field(default_factory=TranscriptMetadata)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TRANSCRIPT_STATUS_COMPLETED


class VideoMetadata(BaseModel):
    """Video-level view derived from a transcript, cached separately."""
    model_config = CAMEL_CASE

    video_id: str
    title: str
    description: Optional[str] = None
    duration: Optional[float] = None
    language: str = "en"
    summary: Optional[str] = None
    thumbnail_url: Optional[str] = None
    key_points: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    transcript_id: Optional[str] = None

    @classmethod
    def from_transcript(cls, record: TranscriptRecord) -> "VideoMetadata":
        return cls(
            video_id=record.video_id,
            title=record.title,
            description=record.description,
            duration=record.duration,
            language=record.language,
            summary=record.summary,
            thumbnail_url=f"https://i.ytimg.com/vi/{record.video_id}/hqdefault.jpg",
            key_points=list(record.metadata.key_points),
            topics=list(record.metadata.topics),
            transcript_id=record.id,
        )


class SummaryOptions(BaseModel):
    """Parameters passed to the summarizer collaborator."""

    style: SummaryStyle = "detailed"
    max_length: Optional[int] = Field(default=None, ge=50, le=1000)
    include_key_points: bool = True
    focus_on_topics: Optional[List[str]] = None


class SummaryResult(BaseModel):
    """What the summarizer collaborator returns."""

    summary: str
    key_points: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    style: SummaryStyle = "detailed"
    word_count: int = 0
    generated_at: datetime
