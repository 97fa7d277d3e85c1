"""
Prometheus metrics: order creations and transitions (API), intake messages (worker), queue depth (SQS).
"""
from prometheus_client import Counter, Gauge, generate_latest

# Lifecycle manager
orders_created_total = Counter(
    "orders_created_total",
    "Total orders persisted in Pending status",
)
order_transitions_total = Counter(
    "order_transitions_total",
    "Total order status transitions applied",
    ["from_status", "to_status"],
)
order_transitions_rejected_total = Counter(
    "order_transitions_rejected_total",
    "Total status changes rejected because the transition is not allowed",
    ["current_status", "attempted_status"],
)

# API: orders accepted (202) onto the intake queue
orders_submitted_total = Counter(
    "orders_submitted_total",
    "Total orders submitted to the intake queue",
)

# Worker: processing outcomes
messages_processed_total = Counter(
    "messages_processed_total",
    "Total intake messages successfully processed",
)
messages_failed_total = Counter(
    "messages_failed_total",
    "Total intake messages that failed processing (retried or sent to DLQ)",
)
messages_dlq_total = Counter(
    "messages_dlq_total",
    "Total intake messages moved to DLQ after max retries",
)

# SQS queue depth (when using SQS)
sqs_queue_messages_waiting = Gauge(
    "sqs_queue_messages_waiting",
    "Approximate number of messages waiting in SQS (main queue)",
)
sqs_queue_messages_in_flight = Gauge(
    "sqs_queue_messages_in_flight",
    "Approximate number of messages in flight (received but not yet deleted)",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
