"""Monitoring configuration for the review engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Session metrics
sessions_built = Counter(
    "vocabmaster_sessions_built_total",
    "Total number of study sessions composed",
    ["pattern"],
)

session_shortfall = Counter(
    "vocabmaster_session_shortfall_total",
    "Total number of session slots left empty for lack of candidates",
)

session_backfill = Counter(
    "vocabmaster_session_backfill_total",
    "Total number of session slots filled from the backfill pool",
)

# Progress metrics
answers_processed = Counter(
    "vocabmaster_answers_processed_total",
    "Total number of answers run through the progress calculation",
    ["path"],  # optimistic, authoritative
)

status_divergences = Counter(
    "vocabmaster_status_divergences_total",
    "Total number of optimistic results corrected by the authoritative pass",
)

# Background save metrics
batch_save_attempts = Counter(
    "vocabmaster_batch_save_attempts_total",
    "Total number of authoritative batch save attempts",
)

batch_save_failures = Counter(
    "vocabmaster_batch_save_failures_total",
    "Total number of batch saves that failed permanently",
    ["error_type"],
)

batch_save_duration = Histogram(
    "vocabmaster_batch_save_duration_seconds",
    "Duration of authoritative batch saves in seconds",
    buckets=[0.1, 0.5, 1.0, 5.0, 30.0],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
