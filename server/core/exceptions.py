"""Exception hierarchy for errors that are surfaced to callers.

Cache-path failures never appear here: the backend adapter turns them into
sentinels. Only guard violations and store-level outcomes the caller must act
on are raised.
"""


class TranscriptServiceError(Exception):
    """Base exception for the transcript cache/indexing core."""


class DestructiveOperationError(TranscriptServiceError):
    """A destructive cache operation was requested where it is not allowed."""

    def __init__(self, operation: str, environment: str):
        self.operation = operation
        self.environment = environment
        super().__init__(f"{operation} is not allowed in {environment}")


class TranscriptNotFoundError(TranscriptServiceError):
    """Transcript row does not exist."""

    def __init__(self, transcript_id: str):
        self.transcript_id = transcript_id
        super().__init__(f"Transcript {transcript_id} not found")


class TranscriptNotReadyError(TranscriptServiceError):
    """Transcript exists but has not finished processing."""

    def __init__(self, transcript_id: str, status: str):
        self.transcript_id = transcript_id
        self.status = status
        super().__init__(f"Transcript {transcript_id} is still {status}")


class SummarizerUnavailableError(TranscriptServiceError):
    """No summarizer collaborator is configured."""
