"""
Operational metrics for the exporter itself.

These describe collection health (pass outcomes, isolated step failures,
upstream request outcomes). The billing gauges collected from the upstream
API live in the metric sink, not here.
"""

from prometheus_client import Counter, Gauge, Histogram

# --- Collection Pass Metrics ---
COLLECTION_PASSES_TOTAL = Counter(
    "exporter_collection_passes_total",
    "Total number of collection passes by outcome",
    ["status"],  # success | failed | skipped
)

COLLECTION_PASS_DURATION = Histogram(
    "exporter_collection_pass_duration_seconds",
    "Duration of collection passes in seconds",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)

COLLECTION_LAST_SUCCESS = Gauge(
    "exporter_collection_last_success_timestamp_seconds",
    "Unix time of the last collection pass that completed",
)

COLLECTION_ENTITIES = Gauge(
    "exporter_collection_entities",
    "Number of entities enumerated by the last completed pass",
)

# --- Fan-out Metrics ---
INFLIGHT_ENTITY_TASKS = Gauge(
    "exporter_inflight_entity_tasks",
    "Current number of sub-collection tasks holding an admission slot",
)

STEP_FAILURES_TOTAL = Counter(
    "exporter_step_failures_total",
    "Total number of isolated sub-collection step failures",
    ["step", "error"],
)

# --- Upstream API Metrics ---
UPSTREAM_REQUESTS_TOTAL = Counter(
    "exporter_upstream_requests_total",
    "Total upstream API requests by classified outcome",
    ["outcome"],  # ok | not_found | forbidden | unauthorized | unknown_status | transport_error
)

UPSTREAM_REQUEST_DURATION = Histogram(
    "exporter_upstream_request_duration_seconds",
    "Duration of upstream API requests",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)
