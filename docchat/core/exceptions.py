"""Custom exceptions for the application."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classified cause of a failed provider or chat call."""

    TIMEOUT = "timeout"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether an end user may simply try again."""
        return self in (ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.NETWORK)


class ServiceError(Exception):
    """Base error carrying a classified kind."""

    default_kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind


class VectorDBError(ServiceError):
    """Raised when vector database operations fail."""

    pass


class IndexUnavailableError(VectorDBError):
    """Raised when the vector database cannot be reached at all."""

    default_kind = ErrorKind.NETWORK


class EmbeddingError(ServiceError):
    """Raised when embedding generation fails."""

    pass


class LLMError(ServiceError):
    """Raised when LLM operations fail."""

    pass


class ChatError(ServiceError):
    """Raised when a chat answer cannot be produced."""

    pass


class InputValidationError(ServiceError):
    """Raised when caller input is rejected before any network call."""

    default_kind = ErrorKind.VALIDATION


class NotFoundError(Exception):
    """Raised when a document or chat does not exist for the caller."""

    pass


class ExtractionError(Exception):
    """Raised when a source cannot be turned into text."""

    pass


class UnsupportedFormatError(ExtractionError):
    """Raised for file types without a decoder."""

    pass


class EmptyContentError(ExtractionError):
    """Raised when a decoder produced no text."""

    pass


class InsufficientContentError(ExtractionError):
    """Raised when a web page yields too little text."""

    pass


class InvalidSourceError(ExtractionError):
    """Raised for malformed URLs and unparseable video links."""

    pass


class TranscriptUnavailableError(ExtractionError):
    """Raised when a video has no retrievable caption track."""

    pass


class IndexingError(Exception):
    """Raised when none of a document's chunks could be indexed."""

    pass


class CacheError(Exception):
    """Raised when cache operations fail."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class StorageError(Exception):
    """Raised when an uploaded file cannot be read."""

    pass
