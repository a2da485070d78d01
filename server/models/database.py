"""SQLModel database models and tables."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import func

from constants import TRANSCRIPT_STATUS_PENDING


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Transcript(SQLModel, table=True):
    """Transcribed video. utterances/metadata are raw JSON here and are
    decoded into models.transcript.TranscriptRecord by core.database."""

    __tablename__ = "transcripts"

    id: str = Field(primary_key=True, max_length=255)
    video_id: str = Field(index=True, max_length=64)
    title: str = Field(max_length=1000)
    description: Optional[str] = Field(default=None)
    summary: Optional[str] = Field(default=None)
    language: str = Field(default="en", max_length=16, index=True)
    duration: Optional[float] = Field(default=None)
    status: str = Field(default=TRANSCRIPT_STATUS_PENDING, max_length=32, index=True)
    utterances: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # "metadata" is reserved on SQLModel classes; the column keeps its name
    summary_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class SearchIndex(SQLModel, table=True):
    """Derived search document, at most one per transcript."""

    __tablename__ = "search_index"

    id: Optional[int] = Field(default=None, primary_key=True)
    transcript_id: str = Field(foreign_key="transcripts.id", unique=True, index=True, max_length=255)
    content: str
    tokens: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    token_count: int = Field(default=0)
    language: str = Field(default="en", max_length=16, index=True)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), index=True)
    )
