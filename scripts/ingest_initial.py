"""Script to ingest sample documents through the full pipeline."""

import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from docchat.core.config import get_settings
from docchat.core.dependencies import ServiceContainer
from docchat.models.document import DocumentStatus, IngestionSource

DEMO_OWNER_ID = "demo-user"

SAMPLE_DOCUMENTS = [
    {
        "title": "Introduction to RAG Systems",
        "text": "Retrieval-Augmented Generation (RAG) combines the power of information retrieval with language models. "
        "It allows systems to access external knowledge bases and provide accurate, up-to-date answers. "
        "RAG systems typically consist of a retriever that finds relevant documents and a generator that creates responses.",
    },
    {
        "title": "Chunking Strategies",
        "text": "Documents are split into overlapping chunks before embedding. "
        "Splitting on paragraph and sentence boundaries keeps each chunk coherent, "
        "while the overlap preserves context that straddles a boundary. "
        "Typical chunk sizes range from 800 to 1000 characters with about 200 characters of overlap.",
    },
    {
        "title": "Vector Databases for Semantic Search",
        "text": "Vector databases store high-dimensional vectors and enable fast similarity search. "
        "They are essential for RAG systems as they allow efficient retrieval of semantically similar documents. "
        "Popular vector databases include Qdrant, Pinecone, and Weaviate. They use algorithms like HNSW for fast approximate nearest neighbor search.",
    },
]


async def ingest_sample_documents() -> None:
    """Ingest sample documents for the demo owner."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    services = ServiceContainer(settings)
    await services.initialize()

    try:
        for sample in SAMPLE_DOCUMENTS:
            source = IngestionSource.from_text(sample["text"], title=sample["title"])
            document = await services.pipeline.ingest(source, DEMO_OWNER_ID)
            if document.status == DocumentStatus.COMPLETED:
                print(f"Ingested document: {document.title} ({len(document.chunks)} chunks)")
            else:
                print(f"Failed to ingest {sample['title']}: {document.error}")
    finally:
        await services.shutdown()

    print(f"\nProcessed {len(SAMPLE_DOCUMENTS)} documents")


if __name__ == "__main__":
    asyncio.run(ingest_sample_documents())
