"""Observability infrastructure for sessionvault.

Provides structured logging and metrics for monitoring session traffic and
expiration sweeps.
"""

from sessionvault.infra.observability.logging import JSONFormatter, setup_logging
from sessionvault.infra.observability.metrics import (
    get_metrics_text,
    get_registry,
    record_session_load,
    record_session_save,
    record_sweep,
)

__all__ = [
    "JSONFormatter",
    "setup_logging",
    "get_metrics_text",
    "get_registry",
    "record_session_load",
    "record_session_save",
    "record_sweep",
]
