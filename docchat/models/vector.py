"""Vector index models."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from docchat.models.document import Chunk

DOCUMENT_ID_FIELD = "documentId"


class VectorPoint(BaseModel):
    """A stored (id, vector, payload) tuple."""

    id: str
    vector: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_chunk(cls, chunk: Chunk, document_id: str, vector: List[float]) -> "VectorPoint":
        payload = {
            "content": chunk.content,
            DOCUMENT_ID_FIELD: document_id,
            **chunk.metadata.to_payload(),
        }
        return cls(id=chunk.id, vector=vector, payload=payload)


class ScoredChunk(BaseModel):
    """A search hit, ordered by descending score."""

    id: str
    content: str
    score: float
    document_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
