"""
Metrics definitions for SafeGuard.

This module defines Prometheus metrics for monitoring zone
classification, panic activation and alert dispatch.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
classifications = Counter(
    "zone_classifications_total",
    "Number of location classifications",
    ["level"]
)

zones_skipped = Counter(
    "zones_skipped_total",
    "Number of malformed zones skipped during classification"
)

zone_refreshes = Counter(
    "zone_refreshes_total",
    "Zone snapshot refresh attempts",
    ["outcome"]
)

geofence_transitions = Counter(
    "geofence_transitions_total",
    "Safety level transitions detected by the geofence monitor",
    ["direction"]
)

panic_activations = Counter(
    "panic_activations_total",
    "Panic activation outcomes",
    ["outcome"]
)

alerts_enqueued = Counter(
    "alerts_enqueued_total",
    "Alert tasks accepted by the dispatch queue",
    ["type", "priority"]
)

alerts_delivered = Counter(
    "alerts_delivered_total",
    "Alert tasks delivered by the send collaborator",
    ["type"]
)

delivery_retries = Counter(
    "delivery_retries_total",
    "Failed delivery attempts scheduled for retry",
    ["type"]
)

alerts_failed_permanent = Counter(
    "alerts_failed_permanent_total",
    "Alert tasks that exhausted their delivery attempts",
    ["type"]
)

# 히스토그램 메트릭
classify_seconds = Histogram(
    "classify_duration_seconds",
    "Time spent classifying a location",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1]
)

drain_seconds = Histogram(
    "drain_duration_seconds",
    "Time spent in a single drain pass",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# 게이지 메트릭
queue_pending = Gauge(
    "dispatch_queue_pending",
    "Current number of pending alert tasks"
)

queue_failed = Gauge(
    "dispatch_queue_failed_permanent",
    "Current number of permanently failed alert tasks"
)

zone_count = Gauge(
    "zone_snapshot_size",
    "Number of zones in the current snapshot"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
