"""Search index statistics and search hit models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional


@dataclass
class IndexStats:
    """Aggregate view of the search index, recomputed on every call."""
    total_indexes: int = 0
    indexes_by_language: Dict[str, int] = field(default_factory=dict)
    average_token_count: float = 0.0
    last_indexed: Optional[datetime] = None
    unindexed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalIndexes": self.total_indexes,
            "indexesByLanguage": dict(self.indexes_by_language),
            "averageTokenCount": self.average_token_count,
            "lastIndexed": self.last_indexed.isoformat() if self.last_indexed else None,
            "unindexedCount": self.unindexed_count,
        }


@dataclass
class SearchHit:
    transcript_id: str
    video_id: str
    title: str
    language: str
    score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcriptId": self.transcript_id,
            "videoId": self.video_id,
            "title": self.title,
            "language": self.language,
            "score": self.score,
        }
