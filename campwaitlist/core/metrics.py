"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Waitlist metrics
waitlist_joins = Counter(
    'waitlist_joins_total',
    'Waitlist join attempts',
    ['result']  # joined, capacity_available, duplicate, disabled
)

offers_issued = Counter(
    'waitlist_offers_issued_total',
    'Offers issued to waitlisted claimants',
    ['trigger']  # automatic, manual
)

offer_outcomes = Counter(
    'waitlist_offer_outcomes_total',
    'Terminal outcomes of issued offers',
    ['outcome']  # accepted, declined, expired, rejected
)

spot_opened_latency = Histogram(
    'waitlist_spot_opened_latency_seconds',
    'Time spent inside the capacity check-then-mark critical section',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Sweep metrics
sweep_runs = Counter(
    'waitlist_sweep_runs_total',
    'Expiry sweep invocations',
    ['result']  # ok, partial
)

sweep_duration = Histogram(
    'waitlist_sweep_duration_seconds',
    'Expiry sweep duration',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0]
)

# Notification metrics
notifications_sent = Counter(
    'waitlist_notifications_total',
    'Notification delivery attempts',
    ['kind', 'result']  # success, failure
)

outbox_dead_letters = Counter(
    'waitlist_outbox_dead_letters_total',
    'Notifications abandoned after exhausting retries',
    ['kind']
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_join(result: str):
    """Record join attempt. Result: joined, capacity_available, duplicate, disabled"""
    waitlist_joins.labels(result=result).inc()

def record_offer_issued(manual: bool = False):
    """Record a new offer."""
    offers_issued.labels(trigger="manual" if manual else "automatic").inc()

def record_offer_outcome(outcome: str):
    """Record offer outcome. Outcome: accepted, declined, expired, rejected"""
    offer_outcomes.labels(outcome=outcome).inc()

def record_notification(kind: str, delivered: bool):
    """Record notification delivery attempt."""
    result = "success" if delivered else "failure"
    notifications_sent.labels(kind=kind, result=result).inc()
