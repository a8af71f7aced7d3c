"""Prometheus metrics for observability.

Provides metrics collection for session loads and saves, record store
operations and expiration sweeps.
"""

import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global registry for metrics
_registry = CollectorRegistry()


# Session Lifecycle Metrics
session_loads_total = Counter(
    "sessionvault_session_loads_total",
    "Total number of session resolutions by outcome",
    ["outcome"],
    registry=_registry,
)

session_saves_total = Counter(
    "sessionvault_session_saves_total",
    "Total number of session saves",
    ["operation", "status"],
    registry=_registry,
)

# Record Store Metrics
record_store_duration_seconds = Histogram(
    "sessionvault_record_store_duration_seconds",
    "Duration of record store operations in seconds",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    registry=_registry,
)

# Sweeper Metrics
sweeps_total = Counter(
    "sessionvault_sweeps_total",
    "Total number of expired-session sweeps",
    ["status"],
    registry=_registry,
)

swept_sessions_total = Counter(
    "sessionvault_swept_sessions_total",
    "Total number of expired sessions deleted by sweeps",
    registry=_registry,
)

sweep_duration_seconds = Histogram(
    "sessionvault_sweep_duration_seconds",
    "Duration of expired-session sweeps in seconds",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
    registry=_registry,
)


def get_registry() -> CollectorRegistry:
    """Get the metrics registry.

    Returns:
        Prometheus collector registry
    """
    return _registry


def get_metrics_text() -> str:
    """Get metrics in Prometheus text format.

    Returns:
        Metrics in Prometheus exposition format
    """
    return generate_latest(_registry).decode("utf-8")


def record_session_load(outcome: str) -> None:
    """Record how a session was resolved.

    Args:
        outcome: "resumed", or the fallback reason (no_cookie/invalid_cookie/
            not_found/load_failed/create_failed)
    """
    session_loads_total.labels(outcome=outcome).inc()


def record_session_save(operation: str, success: bool) -> None:
    """Record a session save.

    Args:
        operation: insert, update or delete
        success: Whether the save succeeded
    """
    status = "success" if success else "error"
    session_saves_total.labels(operation=operation, status=status).inc()


def record_sweep(duration: float, deleted: int, success: bool) -> None:
    """Record an expiration sweep.

    Args:
        duration: Sweep duration in seconds
        deleted: Number of sessions deleted
        success: Whether the sweep completed
    """
    sweeps_total.labels(status="success" if success else "error").inc()
    sweep_duration_seconds.observe(duration)
    if deleted:
        swept_sessions_total.inc(deleted)
