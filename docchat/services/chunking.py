"""Document chunking service."""

import uuid
from typing import Any, List, Optional, Sequence

from langchain_text_splitters import TextSplitter

from docchat.core.config import Settings
from docchat.models.document import Chunk, ChunkMetadata, DocumentMetadata

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", " ", ""]


class OverlapTextSplitter(TextSplitter):
    """Splits text into windows that overlap by exactly ``chunk_overlap`` characters.

    Each chunk ends at the last separator (in priority order) that fits in
    the window, so chunks prefer paragraph and sentence boundaries. Every
    chunk after the first starts ``chunk_overlap`` characters before the
    previous chunk ended, which means dropping that prefix from each later
    chunk and concatenating restores the input exactly.
    """

    def __init__(
        self,
        separators: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(strip_whitespace=False, **kwargs)
        if self._chunk_overlap >= self._chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self._separators = list(separators or DEFAULT_SEPARATORS)

    def split_text(self, text: str) -> List[str]:
        if not text:
            return []

        size = self._chunk_size
        overlap = self._chunk_overlap
        chunks = []
        start = 0

        while len(text) - start > size:
            end = self._find_boundary(text, start + overlap + 1, start + size)
            chunks.append(text[start:end])
            start = end - overlap

        chunks.append(text[start:])
        return chunks

    def _find_boundary(self, text: str, lo: int, hi: int) -> int:
        """Return the end offset of the best separator fully inside text[lo:hi]."""
        for separator in self._separators:
            if not separator:
                break
            idx = text.rfind(separator, lo, hi)
            if idx != -1:
                return idx + len(separator)
        return hi


class ChunkingService:
    """Service for chunking documents into smaller pieces."""

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the chunking service.

        Args:
            settings: Application settings.
        """
        self.overlap = settings.chunk_overlap
        self.splitter = OverlapTextSplitter(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            length_function=len,
        )

    def split(self, text: str) -> List[str]:
        """Split text into ordered, overlapping chunk strings."""
        return self.splitter.split_text(text)

    def _generate_chunk_uuid(self, document_id: str, chunk_index: int) -> str:
        """
        Generate a deterministic UUID for a chunk based on document_id and chunk_index.

        Args:
            document_id: ID of the source document.
            chunk_index: Index of the chunk.

        Returns:
            UUID string for the chunk.
        """
        namespace = uuid.UUID("00000000-0000-0000-0000-000000000000")
        name = f"{document_id}:{chunk_index}"
        return str(uuid.uuid5(namespace, name))

    def chunk_document(
        self, content: str, document_id: str, metadata: Optional[DocumentMetadata] = None
    ) -> List[Chunk]:
        """
        Chunk a document into smaller pieces.

        Args:
            content: Document content to chunk.
            document_id: ID of the source document.
            metadata: Document metadata inherited by every chunk.

        Returns:
            List of chunks with id, content, and metadata.
        """
        inherited = metadata.to_payload() if metadata else {}
        chunks = []
        for idx, chunk_text in enumerate(self.split(content)):
            chunks.append(
                Chunk(
                    id=self._generate_chunk_uuid(document_id, idx),
                    content=chunk_text,
                    metadata=ChunkMetadata(
                        **inherited, index=idx, chunkSize=len(chunk_text)),
                )
            )
        return chunks
