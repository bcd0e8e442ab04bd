"""Prometheus metrics for Slack and Qdrant calls and ingestion runs."""

import prometheus_client as _prom

Counter = _prom.Counter
Histogram = _prom.Histogram


# Per-call metrics for external services (slack, qdrant)
API_LATENCY = Histogram(
    "elkbot_api_latency_seconds",
    "External API latency in seconds by service, method and status",
    ["service", "method", "status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
API_CALLS = Counter(
    "elkbot_api_calls_total",
    "External API call count by service, method and status",
    ["service", "method", "status"],
)

# Whole-operation metrics (one observation per ingestion run)
OP_LATENCY = Histogram(
    "elkbot_operation_latency_seconds",
    "Total latency of ingestion operations by operation and outcome",
    ["operation", "outcome"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 900.0, float("inf")),
)
OP_ITEMS = Histogram(
    "elkbot_operation_items",
    "Number of messages processed by ingestion operations",
    ["operation"],
    buckets=(0, 1, 10, 100, 500, 1000, 5000, 10000, 50000, float("inf")),
)

DOCUMENTS_WRITTEN = Counter(
    "elkbot_documents_written_total",
    "Documents upserted into the index by index name",
    ["index"],
)
UNAUTHORIZED_COMMANDS = Counter(
    "elkbot_unauthorized_commands_total",
    "Commands rejected because the caller is not allowed",
)
