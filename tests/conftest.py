"""Pytest configuration and shared fixtures for the test suite."""

from collections import Counter
from typing import Any, Callable, Iterator

import pytest
import structlog

from dip.cli.walkthrough import build_fee_database
from dip.engine import Database, QueryRegistry, database
from dip.observability.events import RecordingEventSink
from dip.observability.logging import get_logger
from dip.observability.metrics import QueryMetrics


@pytest.fixture(autouse=True)
def fresh_structlog(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Run each test against default structlog config and an uncached engine logger.

    setup_logging caches loggers on first use, which would otherwise pin the
    engine logger to whatever config an earlier test installed.
    """
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    monkeypatch.setattr(database, "logger", get_logger(database.__name__))
    yield
    structlog.reset_defaults()


@pytest.fixture
def sink() -> RecordingEventSink:
    """Create an event sink that records every event."""
    return RecordingEventSink()


@pytest.fixture
def metrics() -> QueryMetrics:
    """Create a metrics collector with its own registry."""
    return QueryMetrics()


@pytest.fixture
def fee_db(sink: RecordingEventSink, metrics: QueryMetrics) -> Database:
    """Create the fee-quote database with base_fee=100, discount=30, age limit=16.

    Inputs are set at revisions 1, 2 and 3 respectively.
    """
    db = build_fee_database(sink=sink, metrics=metrics)
    db.set("base_fee", 100)
    db.set("discount_amount", 30)
    db.set("discount_age_limit", 16)
    return db


@pytest.fixture
def calls() -> Counter:
    """Count query function invocations by query name."""
    return Counter()


@pytest.fixture
def counted(calls: Counter) -> Callable[[str, Callable[..., Any]], Callable[..., Any]]:
    """Wrap a query function so each invocation is counted under ``name``."""

    def wrap(name: str, function: Callable[..., Any]) -> Callable[..., Any]:
        def counted_function(db: Database, *args: Any) -> Any:
            calls[name] += 1
            return function(db, *args)

        return counted_function

    return wrap


@pytest.fixture
def registry() -> QueryRegistry:
    """Create an empty query registry."""
    return QueryRegistry()
