"""
Prometheus metrics for sync outcomes.

Metrics live in a private registry, so several instances (tests, embedded
use) never collide on the global default registry.
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from ..sync.types import SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)

DURATION_BUCKETS = (1, 5, 10, 30, 60, 120, 300, 600)


class SyncMetrics:
    """Exposes sync outcomes as Prometheus metrics."""

    content_type: str = CONTENT_TYPE_LATEST

    def __init__(
        self, registry: CollectorRegistry | None = None, version: str | None = None
    ) -> None:
        self.registry: CollectorRegistry = registry or CollectorRegistry()

        self.runs_total: Counter = Counter(
            "actual_sync_runs_total",
            "Total number of sync runs",
            ["server", "status"],
            registry=self.registry,
        )
        self.duration_seconds: Histogram = Histogram(
            "actual_sync_duration_seconds",
            "Duration of sync runs in seconds",
            ["server", "status"],
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        self.accounts_total: Counter = Counter(
            "actual_sync_accounts_total",
            "Accounts synced, by result",
            ["server", "result"],
            registry=self.registry,
        )
        self.last_run_timestamp: Gauge = Gauge(
            "actual_sync_last_run_timestamp_seconds",
            "Unix timestamp of the last sync run",
            ["server", "status"],
            registry=self.registry,
        )
        self.errors_total: Counter = Counter(
            "actual_sync_errors_total",
            "Failed sync runs, by error code",
            ["server", "error_code"],
            registry=self.registry,
        )
        self.info: Info = Info(
            "actual_sync",
            "Application information",
            registry=self.registry,
        )
        if version:
            self.info.info({"version": version})

    def record(self, outcome: SyncOutcome) -> None:
        """Update every metric from one outcome."""
        server = outcome.server_name
        status = outcome.status.value

        self.runs_total.labels(server=server, status=status).inc()
        self.duration_seconds.labels(server=server, status=status).observe(
            outcome.duration_seconds
        )
        self.accounts_total.labels(server=server, result="succeeded").inc(
            outcome.accounts_succeeded
        )
        self.accounts_total.labels(server=server, result="failed").inc(
            outcome.accounts_failed
        )
        self.last_run_timestamp.labels(server=server, status=status).set(
            outcome.started_at.timestamp()
        )
        if outcome.status is SyncStatus.FAILURE:
            self.errors_total.labels(
                server=server, error_code=outcome.error_code or "UNKNOWN"
            ).inc()

    def render(self) -> bytes:
        """Exposition text for a scrape."""
        return generate_latest(self.registry)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Serve ``/metrics`` on a background thread."""
        _ = start_http_server(port, addr=addr, registry=self.registry)
        logger.info(f"Prometheus metrics available on http://{addr}:{port}/metrics")
