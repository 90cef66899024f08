"""
Prometheus metrics collection for dynamo-migrate

This module provides metrics instrumentation for monitoring migration
throughput, data quality and write failures of long-running daemon runs.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from dynamo_migrate.core.models import FileStats, RunResult

from .progress import ProgressReporter

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# MIGRATION METRICS
# =======================

# Records counter
records_total = Counter(
    name="migrate_records_total",
    documentation="Total number of source records handled",
    labelnames=["profile", "status"],  # status: scanned, inserted, skipped, error
    registry=REGISTRY,
)

# Files counter
files_processed_total = Counter(
    name="migrate_files_processed_total",
    documentation="Total number of export files processed",
    labelnames=["profile", "status"],  # status: complete, interrupted, failed
    registry=REGISTRY,
)

# Files remaining in the current run
files_remaining = Gauge(
    name="migrate_files_remaining",
    documentation="Number of export files still to process in the current run",
    labelnames=["profile"],
    registry=REGISTRY,
)

# Run duration
run_duration_seconds = Histogram(
    name="migrate_run_duration_seconds",
    documentation="Wall-clock duration of migration runs in seconds",
    labelnames=["profile", "completed"],
    buckets=[1.0, 10.0, 60.0, 300.0, 900.0, 3600.0, 14400.0, 43200.0],
    registry=REGISTRY,
)

# Run status
run_completed = Gauge(
    name="migrate_run_completed",
    documentation="Whether the last run processed every file (1) or not (0)",
    labelnames=["profile"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> int:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)

    Returns:
        The port the server listens on
    """
    # Lazy import: the HTTP server is only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)
    return metrics_port


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    """Set a gauge metric value"""
    gauge.labels(**labels).set(value)


# =======================
# PROGRESS REPORTER
# =======================

class PrometheusProgressReporter(ProgressReporter):
    """
    Progress reporter that feeds the module-level Prometheus metrics.
    """

    def __init__(self) -> None:
        self.profile_name = "unknown"
        self._remaining = 0

    def on_start(self, profile_name: str, file_count: int, batch_size: int, resuming: bool) -> None:
        self.profile_name = profile_name
        self._remaining = file_count
        set_gauge(files_remaining, file_count, profile=profile_name)

    def on_file_complete(self, file_index: int, file_total: int, stats: FileStats) -> None:
        profile = self.profile_name
        increment_counter(records_total, stats.scanned, profile=profile, status="scanned")
        increment_counter(records_total, stats.inserted, profile=profile, status="inserted")
        increment_counter(records_total, stats.skipped, profile=profile, status="skipped")
        increment_counter(records_total, stats.errors, profile=profile, status="error")

        if stats.failed:
            status = "failed"
        elif stats.interrupted:
            status = "interrupted"
        else:
            status = "complete"
        increment_counter(files_processed_total, 1, profile=profile, status=status)

        self._remaining = max(self._remaining - 1, 0)
        set_gauge(files_remaining, self._remaining, profile=profile)

    def on_complete(self, profile_name: str, result: RunResult) -> None:
        run_duration_seconds.labels(
            profile=profile_name, completed=str(result.completed).lower()
        ).observe(result.elapsed_seconds)
        set_gauge(run_completed, 1 if result.completed else 0, profile=profile_name)
