"""Async database service with SQLModel and SQLAlchemy 2.0.

Lookups return None when a row is absent; updates raise
TranscriptNotFoundError. Every other database error propagates to the caller.
Rows leave this module as models.transcript.TranscriptRecord, with their JSON
columns already decoded.
"""

from datetime import datetime
from typing import Dict, Any, List, Optional
from sqlmodel import SQLModel, select
from sqlalchemy import func, or_, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from pydantic import ValidationError
from contextlib import asynccontextmanager

from constants import TRANSCRIPT_STATUS_COMPLETED
from core.config import Settings
from core.exceptions import TranscriptNotFoundError
from core.logging import get_logger
from models.database import Transcript, SearchIndex, utc_now
from models.transcript import TranscriptRecord, TranscriptMetadata, Utterance

logger = get_logger(__name__)

UPDATABLE_TRANSCRIPT_FIELDS = frozenset([
    "title", "description", "summary", "language", "duration", "status", "utterances", "metadata",
])


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow
                engine_kwargs["pool_pre_ping"] = True

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> bool:
        """Trivial liveness probe."""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed", error=str(e))
            return False

    # ============================================================================
    # Transcripts
    # ============================================================================

    @staticmethod
    def _to_record(row: Transcript) -> TranscriptRecord:
        """Decode a transcript row, including its JSON columns."""
        utterances = [
            Utterance.model_validate(item)
            for item in (row.utterances or [])
            if isinstance(item, dict)
        ]
        try:
            metadata = TranscriptMetadata.model_validate(row.summary_metadata or {})
        except ValidationError as e:
            logger.warning("Discarding unreadable transcript metadata",
                           transcript_id=row.id, error=str(e))
            metadata = TranscriptMetadata()

        return TranscriptRecord(
            id=row.id,
            video_id=row.video_id,
            title=row.title,
            description=row.description,
            summary=row.summary,
            language=row.language,
            duration=row.duration,
            status=row.status,
            utterances=utterances,
            metadata=metadata,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def _get_transcript_row(self, session: AsyncSession, transcript_id: str) -> Optional[Transcript]:
        stmt = select(Transcript).where(Transcript.id == transcript_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_transcript(self, record: TranscriptRecord) -> TranscriptRecord:
        """Insert a transcript row from a record."""
        async with self.get_session() as session:
            row = Transcript(
                id=record.id,
                video_id=record.video_id,
                title=record.title,
                description=record.description,
                summary=record.summary,
                language=record.language,
                duration=record.duration,
                status=record.status,
                utterances=[u.model_dump(mode="json", exclude_none=True) for u in record.utterances],
                summary_metadata=record.metadata.model_dump(mode="json"),
                created_at=record.created_at or utc_now(),
                updated_at=record.updated_at or utc_now(),
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return self._to_record(row)

    async def get_transcript(self, transcript_id: str) -> Optional[TranscriptRecord]:
        """Get transcript by ID."""
        async with self.get_session() as session:
            row = await self._get_transcript_row(session, transcript_id)
            return self._to_record(row) if row else None

    async def get_transcript_by_video_id(self, video_id: str,
                                         completed_only: bool = True) -> Optional[TranscriptRecord]:
        """Most recent transcript for a video."""
        async with self.get_session() as session:
            stmt = select(Transcript).where(Transcript.video_id == video_id)
            if completed_only:
                stmt = stmt.where(Transcript.status == TRANSCRIPT_STATUS_COMPLETED)
            stmt = stmt.order_by(Transcript.created_at.desc()).limit(1)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def update_transcript(self, transcript_id: str, **fields: Any) -> TranscriptRecord:
        """Partially update a transcript.

        Raises:
            TranscriptNotFoundError: no row with this ID
            ValueError: unknown field name
        """
        unknown = set(fields) - UPDATABLE_TRANSCRIPT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update transcript fields: {sorted(unknown)}")

        async with self.get_session() as session:
            row = await self._get_transcript_row(session, transcript_id)
            if row is None:
                raise TranscriptNotFoundError(transcript_id)

            for name, value in fields.items():
                if name == "metadata":
                    row.summary_metadata = value.model_dump(mode="json")
                elif name == "utterances":
                    row.utterances = [u.model_dump(mode="json", exclude_none=True) for u in value]
                else:
                    setattr(row, name, value)
            row.updated_at = utc_now()

            session.add(row)
            await session.commit()
            await session.refresh(row)
            return self._to_record(row)

    async def delete_transcript(self, transcript_id: str) -> bool:
        """Delete transcript. False if it did not exist."""
        async with self.get_session() as session:
            row = await self._get_transcript_row(session, transcript_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def list_completed_transcript_ids(self, unindexed_only: bool = False) -> List[str]:
        """IDs of completed transcripts, optionally only those without a search index."""
        async with self.get_session() as session:
            stmt = select(Transcript.id).where(Transcript.status == TRANSCRIPT_STATUS_COMPLETED)
            if unindexed_only:
                stmt = stmt.outerjoin(
                    SearchIndex, SearchIndex.transcript_id == Transcript.id
                ).where(SearchIndex.id.is_(None))
            stmt = stmt.order_by(Transcript.created_at)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ============================================================================
    # Search Index
    # ============================================================================

    def _insert(self, table):
        """Dialect insert construct, for ON CONFLICT upserts."""
        if self.engine.dialect.name == "postgresql":
            return pg_insert(table)
        return sqlite_insert(table)

    async def upsert_search_index(self, transcript_id: str, content: str, tokens: List[str],
                                  language: str, indexed_at: Optional[datetime] = None) -> SearchIndex:
        """Create the transcript's search index row or replace its content.

        A single INSERT ... ON CONFLICT statement, so concurrent indexing of
        the same transcript never fails on the unique transcript_id.
        """
        indexed_at = indexed_at or utc_now()

        stmt = self._insert(SearchIndex.__table__).values(
            transcript_id=transcript_id,
            content=content,
            tokens=list(tokens),
            token_count=len(tokens),
            language=language,
            created_at=indexed_at,
            updated_at=indexed_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SearchIndex.__table__.c.transcript_id],
            set_={
                "content": stmt.excluded.content,
                "tokens": stmt.excluded.tokens,
                "token_count": stmt.excluded.token_count,
                "language": stmt.excluded.language,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        async with self.get_session() as session:
            await session.execute(stmt)
            await session.commit()

            result = await session.execute(
                select(SearchIndex).where(SearchIndex.transcript_id == transcript_id)
            )
            return result.scalar_one()

    async def get_search_index(self, transcript_id: str) -> Optional[SearchIndex]:
        async with self.get_session() as session:
            stmt = select(SearchIndex).where(SearchIndex.transcript_id == transcript_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def delete_search_index(self, transcript_id: str) -> bool:
        """Delete the transcript's index row. False if there was none."""
        async with self.get_session() as session:
            stmt = select(SearchIndex).where(SearchIndex.transcript_id == transcript_id)
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()
            if entry is None:
                return False
            await session.delete(entry)
            await session.commit()
            return True

    async def count_search_indexes(self) -> int:
        async with self.get_session() as session:
            result = await session.execute(select(func.count(SearchIndex.id)))
            return result.scalar_one()

    async def count_search_indexes_by_language(self) -> Dict[str, int]:
        async with self.get_session() as session:
            stmt = select(
                SearchIndex.language,
                func.count(SearchIndex.id).label("index_count")
            ).group_by(SearchIndex.language)
            result = await session.execute(stmt)
            return {row.language: row.index_count for row in result.all()}

    async def average_token_count(self) -> float:
        async with self.get_session() as session:
            result = await session.execute(select(func.avg(SearchIndex.token_count)))
            return float(result.scalar_one() or 0)

    async def last_indexed_at(self) -> Optional[datetime]:
        async with self.get_session() as session:
            result = await session.execute(select(func.max(SearchIndex.updated_at)))
            return result.scalar_one()

    async def count_unindexed_transcripts(self) -> int:
        async with self.get_session() as session:
            stmt = select(func.count(Transcript.id)).outerjoin(
                SearchIndex, SearchIndex.transcript_id == Transcript.id
            ).where(
                Transcript.status == TRANSCRIPT_STATUS_COMPLETED,
                SearchIndex.id.is_(None),
            )
            result = await session.execute(stmt)
            return result.scalar_one()

    async def find_search_indexes(self, tokens: List[str], limit: int) -> List[Dict[str, Any]]:
        """Index rows whose content contains any of the tokens, newest first."""
        if not tokens:
            return []

        conditions = [
            SearchIndex.content.ilike(f"%{token.replace('_', chr(92) + '_')}%", escape="\\")
            for token in tokens
        ]
        async with self.get_session() as session:
            stmt = (
                select(SearchIndex, Transcript.video_id, Transcript.title)
                .join(Transcript, Transcript.id == SearchIndex.transcript_id)
                .where(or_(*conditions))
                .order_by(SearchIndex.updated_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [
                {
                    "transcript_id": index.transcript_id,
                    "video_id": video_id,
                    "title": title,
                    "language": index.language,
                    "tokens": list(index.tokens or []),
                    "updated_at": index.updated_at,
                }
                for index, video_id, title in result.all()
            ]
