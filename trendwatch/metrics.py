"""Prometheus metrics for the trend scoring engine."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("trendwatch", "Trend scoring engine application info")
app_info.info({"version": "0.1.0", "name": "trendwatch"})

# Ingestion metrics
signals_ingested_total = Counter(
    "signals_ingested_total",
    "Signals stored, by source",
    ["source"],
)

signals_duplicate_total = Counter(
    "signals_duplicate_total",
    "Signals skipped because the idempotency key already existed",
    ["source"],
)

signals_rejected_total = Counter(
    "signals_rejected_total",
    "Signals rejected by validation",
    ["source"],
)

adapter_errors_total = Counter(
    "adapter_errors_total",
    "Source adapter failures",
    ["source", "error_type"],
)

adapter_fetch_duration_seconds = Histogram(
    "adapter_fetch_duration_seconds",
    "Time spent in source adapter calls",
    ["source"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# Matching metrics
products_matched_total = Counter(
    "products_matched_total",
    "Candidates resolved to a product",
    ["method"],
)

# Scoring metrics
score_recomputes_total = Counter(
    "score_recomputes_total",
    "Number of score recomputes",
)

products_by_status = Gauge(
    "products_by_status",
    "Number of products per lifecycle status",
    ["status"],
)

# Admin operations
merges_total = Counter(
    "product_merges_total",
    "Product merges",
    ["status"],
)

status_transitions_total = Counter(
    "status_transitions_total",
    "Lifecycle transitions",
    ["from_status", "to_status"],
)

# Scheduler metrics
job_runs_total = Counter(
    "job_runs_total",
    "Total number of batch job runs",
    ["job_type", "status"],
)

job_last_run_timestamp = Gauge(
    "job_last_run_timestamp",
    "Timestamp of last batch job run",
    ["job_type"],
)


def record_signal_ingested(source: str, inserted: bool):
    """Record an ingest attempt that passed validation."""
    if inserted:
        signals_ingested_total.labels(source=source).inc()
    else:
        signals_duplicate_total.labels(source=source).inc()


def record_signal_rejected(source: str):
    signals_rejected_total.labels(source=source or "unknown").inc()


def record_adapter_error(source: str, error_type: str):
    adapter_errors_total.labels(source=source, error_type=error_type).inc()


def record_adapter_duration(source: str, duration: float):
    adapter_fetch_duration_seconds.labels(source=source).observe(duration)


def record_match(method: str):
    products_matched_total.labels(method=method).inc()


def record_recompute():
    score_recomputes_total.inc()


def update_products_by_status(status_counts: dict[str, int]):
    """Update the products_by_status gauge with current counts."""
    for status, count in status_counts.items():
        products_by_status.labels(status=status).set(count)


def record_merge(success: bool):
    merges_total.labels(status="success" if success else "error").inc()


def record_status_transition(from_status: str, to_status: str):
    status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def record_job_run(job_type: str, success: bool):
    """Record a batch job run."""
    status = "success" if success else "error"
    job_runs_total.labels(job_type=job_type, status=status).inc()
    job_last_run_timestamp.labels(job_type=job_type).set(time.time())
