"""Prometheus metrics definitions."""

from prometheus_client import Counter, Gauge, Histogram

# HTTP
REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)
REQUEST_DURATION = Histogram(
    "http_request_duration_seconds", "HTTP request duration", ["method", "endpoint"]
)

# Collaboration
HUB_CONNECTIONS = Gauge(
    "open_connections",
    "Number of open realtime hub connections",
    namespace="codementor",
    subsystem="collaboration",
)
LIVE_ROOMS = Gauge(
    "live_rooms",
    "Number of rooms with at least one connected member",
    namespace="codementor",
    subsystem="collaboration",
)
EVENTS_SENT = Counter(
    "events_sent_total",
    "Events queued for delivery to hub connections",
    ["event_type"],
    namespace="codementor",
    subsystem="collaboration",
)
EVENTS_DROPPED = Counter(
    "events_dropped_total",
    "Events dropped because a connection queue was full or closed",
    ["event_type"],
    namespace="codementor",
    subsystem="collaboration",
)
CODE_PERSIST_FAILURES = Counter(
    "code_persist_failures_total",
    "Background code writes that failed",
    namespace="codementor",
    subsystem="collaboration",
)

# AI
AI_REQUESTS = Counter(
    "requests_total",
    "Requests made to the generative AI upstream",
    ["operation", "outcome"],
    namespace="codementor",
    subsystem="ai",
)
