"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
credential_operations_total = Counter(
    "credential_operations_total",
    "Credential store operations",
    ["operation", "status"],  # create/renew/delete/lock/unlock; success/error code
)

roster_changes_total = Counter(
    "roster_changes_total",
    "Credentials added to / removed from the access roster",
    ["direction"],  # add, remove
)

reloads_total = Counter(
    "reloads_total",
    "Protected service restarts",
    ["unit", "status"],
)

expiry_revoked_total = Counter(
    "expiry_revoked_total",
    "Credentials revoked by the expiry sweeper",
)

payment_intents_total = Counter(
    "payment_intents_total",
    "Payment intents by outcome",
    ["outcome"],  # created, paid, failed, expired, abandoned
)

provider_requests_total = Counter(
    "provider_requests_total",
    "Payment provider API requests",
    ["method", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Payment provider request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

# Gauges
outstanding_payment_intents = Gauge(
    "outstanding_payment_intents",
    "Payment intents waiting for confirmation",
)

active_sessions = Gauge(
    "active_conversation_sessions",
    "Conversation sessions not in idle",
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
