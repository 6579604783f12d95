"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
payments_initialized_total = Counter(
    "payments_initialized_total",
    "Total number of payments initialized with a gateway",
    ["provider"],
)

payment_verifications_total = Counter(
    "payment_verifications_total",
    "Payment verification attempts by outcome",
    ["provider", "outcome"],  # paid, already_paid, already_refunded, failed, pending, error
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total payment gateway API requests",
    ["provider", "operation", "status"],
)

warranty_lookups_total = Counter(
    "warranty_lookups_total",
    "Warranty provider lookups by raw status",
    ["provider", "status"],
)

warranty_checks_created_total = Counter(
    "warranty_checks_created_total",
    "Warranty checks created",
    ["initiated_by"],
)

webhooks_received_total = Counter(
    "webhooks_received_total",
    "Webhook deliveries by outcome",
    ["provider", "outcome"],  # processed, duplicate, bad_signature, error
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway request duration",
    ["provider", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)

warranty_lookup_duration_seconds = Histogram(
    "warranty_lookup_duration_seconds",
    "Warranty provider lookup duration",
    ["provider"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
