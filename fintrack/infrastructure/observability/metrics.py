"""Prometheus metrics for monitoring ingestion outcomes, enrichment health and analytics latency"""

from prometheus_client import Counter, Histogram

# Ingestion metrics
messages_counter = Counter(
    "fintrack_messages_total",
    "Inbox messages processed by ingestion outcome",
    ["outcome"],  # new | duplicate | non_financial
)

ingestion_runs_counter = Counter(
    "fintrack_ingestion_runs_total",
    "Ingestion runs",
    ["outcome"],  # ok | failed
)

persistence_failures_counter = Counter(
    "fintrack_persistence_failures_total",
    "Batch writes rolled back",
)

reclassified_counter = Counter(
    "fintrack_reclassified_total",
    "Stored transactions whose direction was corrected",
)

# Enrichment metrics
enrichment_counter = Counter(
    "fintrack_enrichment_requests_total",
    "Remote enrichment attempts",
    ["outcome"],  # ok | disabled | timeout | quota | auth | http_error | network | malformed
)

enrichment_latency_histogram = Histogram(
    "fintrack_enrichment_latency_seconds",
    "Remote enrichment response time",
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Analytics metrics
insights_duration_histogram = Histogram(
    "fintrack_insights_duration_seconds",
    "Time spent generating a spending insights snapshot",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)


def record_ingestion(result) -> None:
    """Record per-message outcomes and the run outcome for one IngestionResult"""
    if result.failed:
        ingestion_runs_counter.labels(outcome="failed").inc()
        persistence_failures_counter.inc()
        return

    ingestion_runs_counter.labels(outcome="ok").inc()
    messages_counter.labels(outcome="new").inc(result.created)
    messages_counter.labels(outcome="duplicate").inc(result.duplicates)
    messages_counter.labels(outcome="non_financial").inc(result.skipped_non_financial)


def record_enrichment(outcome: str, duration_seconds: float = None) -> None:
    enrichment_counter.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        enrichment_latency_histogram.observe(duration_seconds)
