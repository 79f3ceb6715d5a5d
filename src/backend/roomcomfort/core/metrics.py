"""Prometheus metrics instrumentation for RoomComfort."""

from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator, metrics

# Telemetry ingestion counter
readings_ingested_total = Counter(
    "roomcomfort_readings_ingested_total",
    "Total number of sensor readings stored",
)

# Recommendation outcomes (saved, duplicate, rejected, failed)
recommendations_total = Counter(
    "roomcomfort_recommendations_total",
    "Recommendation persistence attempts by outcome",
    ["outcome"],
)

# Rejected conditional updates
precondition_failures_total = Counter(
    "roomcomfort_precondition_failures_total",
    "Conditional updates rejected by the version check",
    ["resource", "reason"],
)


def setup_metrics(app) -> Instrumentator:
    """Set up Prometheus metrics instrumentation for FastAPI app."""
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/health", "/health/live", "/health/ready", "/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="",
            metric_subsystem="",
            latency_highr_buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )
    )

    instrumentator.instrument(app)

    return instrumentator


def expose_metrics(app, instrumentator: Instrumentator) -> None:
    """Expose the /metrics endpoint."""
    instrumentator.expose(app, include_in_schema=False, should_gzip=False)


def record_reading_ingested() -> None:
    """Increment the stored readings counter."""
    readings_ingested_total.inc()


def record_recommendation(outcome: str) -> None:
    """Count a recommendation persistence outcome."""
    recommendations_total.labels(outcome=outcome).inc()


def record_precondition_failure(resource: str, reason: str) -> None:
    """Count a rejected conditional update."""
    precondition_failures_total.labels(resource=resource, reason=reason).inc()
