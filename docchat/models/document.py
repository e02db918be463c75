"""Document models for the RAG system."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docchat.core.exceptions import InputValidationError

MIN_TEXT_CHARS = 10
MAX_TEXT_CHARS = 50000
MAX_TITLE_CHARS = 500
MAX_SUMMARY_CHARS = 1000

_YOUTUBE_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be", "www.youtu.be")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_youtube_url(url: str) -> bool:
    """Return True if *url* points at a YouTube host."""
    host = (urlparse(url.strip()).hostname or "").lower()
    return host in _YOUTUBE_HOSTS or host.endswith(".youtube.com")


class DocumentType(str, Enum):
    """Kind of source a document was ingested from."""

    FILE = "file"
    URL = "url"
    YOUTUBE = "youtube"
    TEXT = "text"


class DocumentStatus(str, Enum):
    """Processing status; moves from processing to exactly one terminal state."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentMetadata(BaseModel):
    """Open metadata map with the commonly used keys spelled out.

    Unknown keys are kept as extra fields so extractors can attach
    source-specific details without schema changes.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    mime_type: Optional[str] = Field(None, alias="mimeType")
    original_name: Optional[str] = Field(None, alias="originalName")
    file_size: Optional[int] = Field(None, alias="fileSize")
    url: Optional[str] = None
    domain: Optional[str] = None
    pages: Optional[int] = Field(None, alias="pageCount")
    duration: Optional[float] = None
    video_id: Optional[str] = Field(None, alias="videoId")
    platform: Optional[str] = None
    channel: Optional[str] = None
    has_transcript: Optional[bool] = Field(None, alias="hasTranscript")
    transcript_length: Optional[int] = Field(None, alias="transcriptLength")
    length: Optional[int] = None
    extracted_at: Optional[str] = Field(None, alias="extractedAt")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with wire (camelCase) keys, dropping unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ChunkMetadata(DocumentMetadata):
    """Document metadata plus the chunk's position and length."""

    index: int
    chunk_size: int = Field(alias="chunkSize")


class Chunk(BaseModel):
    """A contiguous slice of a document's content."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    metadata: ChunkMetadata


class ExtractedContent(BaseModel):
    """Normalized output of the content extractor."""

    title: str
    text: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


class Document(BaseModel):
    """Document model representing an ingested source."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    title: str = Field(..., max_length=MAX_TITLE_CHARS)
    content: str = ""
    summary: str = Field("", max_length=MAX_SUMMARY_CHARS)
    type: DocumentType
    source: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    status: DocumentStatus = DocumentStatus.PROCESSING
    error: Optional[str] = None
    chunks: List[Chunk] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("title", mode="before")
    @classmethod
    def _clip_title(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip()[:MAX_TITLE_CHARS]
        return value


class IngestionSource(BaseModel):
    """A raw input waiting to be ingested."""

    kind: DocumentType
    title: Optional[str] = None
    path: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_file(
        cls,
        path: str,
        original_name: str,
        mime_type: str,
        size: Optional[int] = None,
        title: Optional[str] = None,
    ) -> "IngestionSource":
        return cls(
            kind=DocumentType.FILE,
            path=path,
            original_name=original_name,
            mime_type=mime_type,
            size=size,
            title=title,
        )

    @classmethod
    def from_url(cls, url: str, title: Optional[str] = None) -> "IngestionSource":
        url = url.strip()
        kind = DocumentType.YOUTUBE if is_youtube_url(url) else DocumentType.URL
        return cls(kind=kind, url=url, title=title)

    @classmethod
    def from_text(cls, text: str, title: Optional[str] = None) -> "IngestionSource":
        if not MIN_TEXT_CHARS <= len(text) <= MAX_TEXT_CHARS:
            raise InputValidationError(
                f"Text must be between {MIN_TEXT_CHARS} and {MAX_TEXT_CHARS} characters")
        return cls(kind=DocumentType.TEXT, text=text, title=title)

    def placeholder_title(self) -> str:
        """Title shown while the document is still processing."""
        if self.title:
            return self.title
        if self.kind == DocumentType.FILE and self.original_name:
            return Path(self.original_name).stem
        if self.url:
            return self.url
        return "Untitled"

    def placeholder_source(self) -> str:
        if self.kind == DocumentType.FILE:
            return Path(self.path or "").name
        if self.kind == DocumentType.TEXT:
            return "direct_input"
        return self.url or ""

    def placeholder_metadata(self) -> DocumentMetadata:
        if self.kind == DocumentType.FILE:
            return DocumentMetadata(
                original_name=self.original_name,
                mime_type=self.mime_type,
                file_size=self.size,
            )
        if self.kind == DocumentType.TEXT:
            return DocumentMetadata(length=len(self.text or ""))
        return DocumentMetadata(url=self.url)
