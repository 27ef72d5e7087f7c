"""Prometheus metrics for query evaluation.

Each QueryMetrics instance registers its counters in its own
CollectorRegistry, so several databases in one process keep separate
counts.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest

# Resolution paths for a fetch
PATH_NEW = "new"
PATH_FRESH = "fresh"
PATH_INPUT = "input"
PATH_CUTOFF = "cutoff"
PATH_RECOMPUTED = "recomputed"


class QueryMetrics:
    """Counts fetches, query function runs, early cutoffs and errors.

    Example:
        >>> metrics = QueryMetrics()
        >>> metrics.record_fetch("derived", PATH_CUTOFF)
        >>> metrics.sample("dip_fetches_total", kind="derived", path="cutoff")
        1.0
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.fetches_total = Counter(
            "dip_fetches_total",
            "Total number of fetches, by key kind and resolution path",
            labelnames=["kind", "path"],
            registry=self.registry,
        )
        self.function_runs_total = Counter(
            "dip_function_runs_total",
            "Total number of query function invocations",
            labelnames=["query"],
            registry=self.registry,
        )
        self.early_cutoffs_total = Counter(
            "dip_early_cutoffs_total",
            "Recomputations avoided (dependencies) or not propagated (value)",
            labelnames=["reason"],
            registry=self.registry,
        )
        self.input_sets_total = Counter(
            "dip_input_sets_total",
            "Total number of input mutations",
            labelnames=["input"],
            registry=self.registry,
        )
        self.errors_total = Counter(
            "dip_errors_total",
            "Total number of failed fetch or set_input calls",
            labelnames=["error_code"],
            registry=self.registry,
        )

    def record_fetch(self, kind: str, path: str) -> None:
        """Record how a fetch was resolved.

        Args:
            kind: "input" or "derived"
            path: One of new, fresh, input, cutoff, recomputed
        """
        self.fetches_total.labels(kind=kind, path=path).inc()

    def record_function_run(self, query: str) -> None:
        self.function_runs_total.labels(query=query).inc()

    def record_early_cutoff(self, reason: str) -> None:
        """Record an early cutoff.

        Args:
            reason: "dependencies" when no dependency changed, "value" when a
                recomputed value equalled the memoized one
        """
        self.early_cutoffs_total.labels(reason=reason).inc()

    def record_input_set(self, input_name: str) -> None:
        self.input_sets_total.labels(input=input_name).inc()

    def record_error(self, error_code: str) -> None:
        self.errors_total.labels(error_code=error_code).inc()

    def sample(self, name: str, **labels: str) -> float:
        """Read the current value of a sample, 0.0 if it was never recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def generate_metrics(self) -> bytes:
        """Generate Prometheus metrics in text format."""
        return generate_latest(self.registry)
