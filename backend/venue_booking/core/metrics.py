"""
Metrics instrumentation for observability.
Prometheus-compatible collectors registered on the default registry.
"""

from prometheus_client import Counter, Histogram

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation requests',
    ['result']  # admitted, approved_overlap, pending_overlap, invalid_selection, error
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Reservation admission latency (lock + check + compose + persist)',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

approval_transitions = Counter(
    'approval_transitions_total',
    'Operator approval decisions applied',
    ['decision']  # approved, rejected, auto_rejected
)

# Payment metrics
payment_confirmations = Counter(
    'payment_confirmations_total',
    'Payment confirmation outcomes',
    ['result']  # completed, already_completed, mismatch, gateway_error
)

gateway_errors = Counter(
    'gateway_errors_total',
    'Errors talking to outbound gateways',
    ['gateway', 'operation']
)

# Notification metrics
notification_deliveries = Counter(
    'notification_deliveries_total',
    'Approval notification deliveries',
    ['channel', 'result']  # sent, failed, skipped
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


# Convenience functions for instrumentation
def record_reservation_attempt(result: str):
    """Record reservation attempt outcome."""
    reservation_attempts.labels(result=result).inc()


def record_approval(decision: str, count: int = 1):
    approval_transitions.labels(decision=decision).inc(count)


def record_payment_confirmation(result: str):
    payment_confirmations.labels(result=result).inc()


def record_gateway_error(gateway: str, operation: str):
    gateway_errors.labels(gateway=gateway, operation=operation).inc()


def record_notification(channel: str, result: str):
    notification_deliveries.labels(channel=channel, result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
