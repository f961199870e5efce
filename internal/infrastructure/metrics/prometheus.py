"""
Prometheus Metrics for Product Catalog.

Defines all metrics for monitoring catalog performance and health.
"""

from prometheus_client import Counter, Histogram

# HTTP
HTTP_REQUESTS_TOTAL = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

HTTP_REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Storage
STORE_OPERATIONS_TOTAL = Counter(
    'store_operations_total',
    'Storage operations',
    ['operation', 'status']  # status: success, not_found, unavailable, error
)

STORE_OPERATION_DURATION = Histogram(
    'store_operation_duration_seconds',
    'Storage operation duration',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# Change stream translation
CHANGE_RECORDS_TOTAL = Counter(
    'change_records_total',
    'Change records handled by the translator',
    ['source', 'outcome']  # outcome: succeeded, failed, malformed
)

EVENTS_PUBLISHED_TOTAL = Counter(
    'events_published_total',
    'Domain events handed to the event bus',
    ['event_type', 'status']  # status: success, error
)

PUBLISH_DURATION = Histogram(
    'event_publish_duration_seconds',
    'Event publish duration',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)


def record_batch(source: str, counts: dict[str, int]) -> None:
    """
    Count the outcomes of one translated batch.

    Args:
        source: Feed the batch came from.
        counts: Number of records per outcome.
    """
    for outcome, count in counts.items():
        if count:
            CHANGE_RECORDS_TOTAL.labels(source=source, outcome=outcome).inc(count)
