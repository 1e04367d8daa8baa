"""Prometheus metrics for the step engine service."""

from prometheus_client import Counter, Gauge, Histogram

requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

chunks_processed_total = Counter(
    "step_engine_chunks_processed_total",
    "Chunks handled by the engine",
    ["outcome"],
)
steps_counted_total = Counter(
    "step_engine_steps_counted_total",
    "Normal steps added to session totals",
)
running_steps_total = Counter(
    "step_engine_running_steps_total",
    "Steps attributed to running bouts",
)
samples_deduplicated_total = Counter(
    "step_engine_samples_deduplicated_total",
    "Samples skipped because they were at or below the high-water mark",
)
storage_failures_total = Counter(
    "step_engine_storage_failures_total",
    "Failed store operations",
    ["operation"],
)
chunk_processing_seconds = Histogram(
    "step_engine_chunk_processing_seconds",
    "Time spent processing one chunk",
)
cached_sessions = Gauge(
    "step_engine_cached_sessions",
    "Session counter states held in memory",
)
kafka_messages_total = Counter(
    "kafka_messages_total",
    "Total Kafka messages sent",
    ["topic", "status"],
)
