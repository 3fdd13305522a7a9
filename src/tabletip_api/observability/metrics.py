from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

operation_total = Counter(
    "tt_operation_total",
    "Count of critical operations.",
    labelnames=("operation", "outcome", "error_code"),
)
operation_duration_seconds = Histogram(
    "tt_operation_duration_seconds",
    "Duration of critical operations in seconds.",
    labelnames=("operation", "outcome"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        30.0,
        60.0,
    ),
)

receipt_poll_attempts = Histogram(
    "tt_receipt_poll_attempts",
    "Transaction receipt lookups needed per crypto tip verification.",
    labelnames=("network", "outcome"),
    buckets=(1, 2, 3, 4, 6, 8, 10, 12, 16, 24),
)

crypto_tip_rejections_total = Counter(
    "tt_crypto_tip_rejections_total",
    "Crypto tip submissions rejected, by failure code.",
    labelnames=("network", "error_code"),
)

tip_status_transition_total = Counter(
    "tt_tip_status_transition_total",
    "Count of card tip status transitions.",
    labelnames=("from_status", "to_status", "outcome"),
)


def render_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
