"""Search indexing for transcript content.

Each completed transcript gets at most one SearchIndex row holding its
searchable text and a deduplicated token list. Indexing is best-effort:
index_transcript logs its own failures and reports them as False, so batch
runs never abort because of a single transcript.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from core.logging import get_logger
from models.database import utc_now
from models.search import IndexStats, SearchHit
from models.transcript import TranscriptRecord

if TYPE_CHECKING:
    from core.database import Database
    from services.cache_service import CacheService

logger = get_logger(__name__)

# Title is repeated to weight it over body text
TITLE_WEIGHT = 3

# Candidate rows fetched per requested hit before ranking
SEARCH_CANDIDATE_FACTOR = 5

_PUNCTUATION = re.compile(r"[^\w\s]")

STOP_WORDS = frozenset([
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "will", "with", "would", "you", "your", "this", "they", "we",
    "have", "had", "what", "said", "each", "which", "their", "time", "if", "up",
    "out", "many", "then", "them", "these", "so", "some", "her", "him", "his",
    "how", "man", "new", "now", "old", "see", "two", "way", "who", "boy",
    "did", "number", "no", "part", "like", "over", "such", "came", "come", "work",
    "life", "also", "back", "after", "first", "well", "year", "where", "much", "may",
    "say", "she", "use", "all", "there", "think", "were", "been",
])


@dataclass(frozen=True)
class TokenizationOptions:
    min_word_length: int = 3
    max_tokens: int = 1000
    remove_stop_words: bool = True


DEFAULT_TOKENIZATION = TokenizationOptions()


def tokenize_content(content: str, options: TokenizationOptions = DEFAULT_TOKENIZATION) -> List[str]:
    """Lowercase, strip punctuation, drop short words and stop words, dedupe, cap.

    Order of first appearance is kept.
    """
    words = _PUNCTUATION.sub(" ", content.lower()).split()

    tokens: Dict[str, None] = {}
    for word in words:
        if len(word) < options.min_word_length:
            continue
        if options.remove_stop_words and word in STOP_WORDS:
            continue
        if word in tokens:
            continue
        if len(tokens) >= options.max_tokens:
            break
        tokens[word] = None

    return list(tokens)


def extract_searchable_content(record: TranscriptRecord) -> str:
    parts = [record.title] * TITLE_WEIGHT
    if record.description:
        parts.append(record.description)
    parts.extend(u.text for u in record.utterances if u.text)
    return " ".join(parts)


class SearchIndexingService:
    """Keeps the search index in sync with the transcript store."""

    def __init__(self, database: "Database",
                 cache: Optional["CacheService"] = None,
                 batch_size: int = 10,
                 batch_delay: float = 0.1,
                 options: TokenizationOptions = DEFAULT_TOKENIZATION,
                 clock: Callable[[], datetime] = utc_now):
        self.database = database
        self.cache = cache
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.options = options
        self._clock = clock

    async def index_transcript(self, transcript_id: str) -> bool:
        """Create or refresh the index row for one transcript. False if absent or on failure."""
        try:
            record = await self.database.get_transcript(transcript_id)
            if record is None:
                logger.warning("Transcript not found for indexing", transcript_id=transcript_id)
                return False

            content = extract_searchable_content(record)
            tokens = tokenize_content(content, self.options)

            await self.database.upsert_search_index(
                transcript_id=transcript_id,
                content=content,
                tokens=tokens,
                language=record.language,
                indexed_at=self._clock(),
            )

            logger.info("Indexed transcript", transcript_id=transcript_id, token_count=len(tokens))
            return True

        except Exception as e:
            logger.error("Failed to index transcript", transcript_id=transcript_id, error=str(e))
            return False

    async def batch_index_transcripts(self, transcript_ids: List[str],
                                      batch_size: Optional[int] = None) -> int:
        """Index in fixed-size concurrent batches. Returns the number indexed."""
        batch_size = batch_size or self.batch_size
        success_count = 0

        logger.info("Starting batch indexing", total=len(transcript_ids), batch_size=batch_size)

        for start in range(0, len(transcript_ids), batch_size):
            batch = transcript_ids[start:start + batch_size]
            results = await asyncio.gather(
                *(self.index_transcript(tid) for tid in batch),
                return_exceptions=True,
            )

            batch_success = sum(1 for result in results if result is True)
            success_count += batch_success

            for tid, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.error("Indexing task raised", transcript_id=tid, error=str(result))

            logger.info("Batch indexed",
                        batch=start // batch_size + 1,
                        succeeded=batch_success,
                        size=len(batch))

            if start + batch_size < len(transcript_ids):
                await asyncio.sleep(self.batch_delay)

        logger.info("Batch indexing complete", indexed=success_count, total=len(transcript_ids))

        if success_count > 0:
            await self._invalidate_search_results()
        return success_count

    async def index_all_unindexed_transcripts(self) -> int:
        transcript_ids = await self.database.list_completed_transcript_ids(unindexed_only=True)
        if not transcript_ids:
            logger.info("All transcripts are already indexed")
            return 0
        return await self.batch_index_transcripts(transcript_ids)

    async def reindex_all_transcripts(self, batch_size: Optional[int] = None) -> int:
        """Rebuild every completed transcript's index, e.g. after tokenizer changes."""
        transcript_ids = await self.database.list_completed_transcript_ids()
        if not transcript_ids:
            logger.info("No transcripts to reindex")
            return 0

        logger.info("Starting full reindex", total=len(transcript_ids))
        return await self.batch_index_transcripts(transcript_ids, batch_size)

    async def remove_index(self, transcript_id: str) -> bool:
        """Delete a transcript's index row. An already absent row counts as success."""
        try:
            removed = await self.database.delete_search_index(transcript_id)
        except Exception as e:
            logger.error("Failed to remove search index", transcript_id=transcript_id, error=str(e))
            return False

        if removed:
            logger.info("Removed search index", transcript_id=transcript_id)
            await self._invalidate_search_results()
        return True

    async def get_index_stats(self) -> IndexStats:
        try:
            total, by_language, avg_tokens, last_indexed, unindexed = await asyncio.gather(
                self.database.count_search_indexes(),
                self.database.count_search_indexes_by_language(),
                self.database.average_token_count(),
                self.database.last_indexed_at(),
                self.database.count_unindexed_transcripts(),
            )
        except Exception as e:
            logger.error("Failed to get index stats", error=str(e))
            return IndexStats()

        return IndexStats(
            total_indexes=total,
            indexes_by_language=by_language,
            average_token_count=round(avg_tokens, 2),
            last_indexed=last_indexed,
            unindexed_count=unindexed,
        )

    # ============================================================================
    # Search
    # ============================================================================

    async def search(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Read-through search: cached result list, else rank matching index rows."""
        tokens = tokenize_content(query, self.options)
        if not tokens:
            return []

        cache_query = f"{' '.join(tokens)}|{limit}"
        if self.cache:
            cached = await self.cache.get_search_results(cache_query)
            if cached is not None:
                return cached

        rows = await self.database.find_search_indexes(tokens, limit * SEARCH_CANDIDATE_FACTOR)
        wanted = set(tokens)

        hits = []
        for row in rows:
            score = len(wanted.intersection(row["tokens"]))
            if score == 0:
                continue
            hits.append(SearchHit(
                transcript_id=row["transcript_id"],
                video_id=row["video_id"],
                title=row["title"],
                language=row["language"],
                score=score,
            ))

        # rows arrive newest first, so a stable sort keeps recency as the tie-breaker
        hits.sort(key=lambda hit: hit.score, reverse=True)
        results = [hit.to_dict() for hit in hits[:limit]]

        if self.cache:
            await self.cache.set_search_results(cache_query, results)
        return results

    async def _invalidate_search_results(self) -> None:
        if self.cache:
            await self.cache.invalidate_search_results()
