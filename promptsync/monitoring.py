# promptsync/monitoring.py
"""
Centralized monitoring: Prometheus metrics, structured JSON logging, optional Sentry.

Env vars:
- PROMETHEUS_ENABLED (default: true)
- SENTRY_DSN (optional)
- LOG_AS_JSON (default: true)
- LOG_LEVEL (default: INFO)
- ENVIRONMENT (default: development)
"""

import os
import logging
import time
from typing import Tuple

from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)
from pythonjsonlogger import jsonlogger

# Optional import: Sentry stays off when not installed
try:
    import sentry_sdk
    _HAS_SENTRY = True
except ImportError:
    _HAS_SENTRY = False

# --- ENV flags
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "true").lower() in ("1", "true", "yes")
SENTRY_DSN = os.getenv("SENTRY_DSN", None)
LOG_AS_JSON = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# --- Logger setup
def setup_logger(name: str = "promptsync", level: int = None) -> logging.Logger:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO")) if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if LOG_AS_JSON:
            fmt = jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s"
            )
        else:
            fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    return logger


logger = setup_logger()

# --- Sentry (optional)
if SENTRY_DSN and _HAS_SENTRY:
    sentry_sdk.init(dsn=SENTRY_DSN, environment=ENVIRONMENT)
    logger.info("Sentry initialized")


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "promptsync_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "promptsync_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

STORE_MUTATIONS = Counter(
    "promptsync_store_mutations_total",
    "Store mutations by operation and outcome",
    ["operation", "outcome"],
)

EVENTS_PUBLISHED = Counter(
    "promptsync_events_published_total",
    "Events fanned out to live connections",
    ["event_type"],
)

DELIVERY_FAILURES = Counter(
    "promptsync_delivery_failures_total",
    "Failed sends to live connections",
)

ACTIVE_CONNECTIONS = Gauge(
    "promptsync_active_connections",
    "Connections currently in the registry",
)

HEARTBEAT_EVICTIONS = Counter(
    "promptsync_heartbeat_evictions_total",
    "Connections evicted for missing a probe",
)

PROBE_FAILURES = Counter(
    "promptsync_probe_failures_total",
    "Probe frames that could not be sent",
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def inc_store_mutation(operation: str, outcome: str):
    try:
        STORE_MUTATIONS.labels(operation=operation, outcome=outcome).inc()
    except Exception:
        pass


def inc_event_published(event_type: str):
    try:
        EVENTS_PUBLISHED.labels(event_type=event_type).inc()
    except Exception:
        pass


def inc_delivery_failure():
    try:
        DELIVERY_FAILURES.inc()
    except Exception:
        pass


def set_active_connections(n: int):
    try:
        ACTIVE_CONNECTIONS.set(n)
    except Exception:
        pass


def inc_heartbeat_eviction():
    try:
        HEARTBEAT_EVICTIONS.inc()
    except Exception:
        pass


def inc_probe_failure():
    try:
        PROBE_FAILURES.inc()
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST
