"""Observability module for tracing, logging and metrics.

This module provides:
- Structured logging via structlog
- Diagnostic events and sinks for human-readable query traces
- Prometheus metrics for fetch resolution paths and query runs
"""

from dip.observability.events import (
    EventSink,
    FanOutEventSink,
    LoggingEventSink,
    RecordingEventSink,
)
from dip.observability.logging import get_logger, setup_logging
from dip.observability.metrics import QueryMetrics

__all__ = [
    "setup_logging",
    "get_logger",
    "EventSink",
    "LoggingEventSink",
    "RecordingEventSink",
    "FanOutEventSink",
    "QueryMetrics",
]
