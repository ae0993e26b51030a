"""Exception hierarchy for the notes RAG pipeline.

    NotesRagError
    +-- ConfigurationError         (bad window sizing, aborts before any I/O)
    +-- SourceStreamError          (record source exited non-zero)
    +-- EmbeddingServiceError      (one embedding call failed)
    +-- StorageWriteError          (one note or window could not be written)
        +-- SchemaInitializationError  (database cannot start)

Only ConfigurationError, SourceStreamError and SchemaInitializationError end
an ingestion run. The others are logged and the affected unit is skipped.
"""
from typing import Any, Dict, Optional


class NotesRagError(Exception):
    """Base exception for all notesrag errors."""

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(NotesRagError):
    """Raised when window sizing cannot work, e.g. a title longer than the window."""


class SourceStreamError(NotesRagError):
    """Raised when the record source process fails.

    ``stats`` carries the counters of the run up to the failure; data that
    was already committed stays in place.
    """

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stats: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stats = stats or {}


class EmbeddingServiceError(NotesRagError):
    """Raised when the embedding service call does not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageWriteError(NotesRagError):
    """Raised when a note or window write is rolled back."""


class SchemaInitializationError(StorageWriteError):
    """Raised when the database schema cannot be created or loaded."""
