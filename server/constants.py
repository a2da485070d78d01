"""Centralized constants for cache namespaces and transcript states."""

# =============================================================================
# CACHE KEY NAMESPACES
# =============================================================================

TRANSCRIPT_KEY_PREFIX = "transcript:"
VIDEO_METADATA_KEY_PREFIX = "video-metadata:"
SEARCH_RESULTS_KEY_PREFIX = "search-results:"

# Glob matching every cached search result list
SEARCH_RESULTS_PATTERN = f"{SEARCH_RESULTS_KEY_PREFIX}*"

# =============================================================================
# TRANSCRIPT STATUS
# =============================================================================

TRANSCRIPT_STATUS_PENDING = "pending"
TRANSCRIPT_STATUS_PROCESSING = "processing"
TRANSCRIPT_STATUS_COMPLETED = "completed"
TRANSCRIPT_STATUS_FAILED = "failed"
