"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

ingestions_started_total = Counter(
    "docchat_ingestions_started_total", "Total number of ingestions started", ["type"])
ingestions_completed_total = Counter(
    "docchat_ingestions_completed_total", "Total number of ingestions completed", ["type"])
ingestions_failed_total = Counter(
    "docchat_ingestions_failed_total", "Total number of ingestions failed", ["type"])
ingestion_duration_seconds = Histogram(
    "docchat_ingestion_duration_seconds", "Ingestion duration in seconds", buckets=[
        0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0])

chunks_indexed_total = Counter(
    "docchat_chunks_indexed_total", "Total number of chunks written to the vector index")
chunks_dropped_total = Counter(
    "docchat_chunks_dropped_total", "Total number of chunks that could not be indexed")

query_counter = Counter("docchat_queries_total",
                        "Total number of chat queries processed")
query_errors_total = Counter(
    "docchat_query_errors_total", "Total number of chat query errors", ["kind"])
query_latency_seconds = Histogram(
    "docchat_query_latency_seconds", "Chat query latency in seconds", buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0])

vector_search_fallbacks_total = Counter(
    "docchat_vector_search_fallbacks_total",
    "Total number of filtered searches served without the documentId index")
