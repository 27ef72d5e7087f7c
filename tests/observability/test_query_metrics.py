"""Tests for Prometheus query metrics."""

import pytest
from prometheus_client import CollectorRegistry

from dip.cli.walkthrough import build_fee_database
from dip.engine import UnsetInputError
from dip.observability.metrics import PATH_CUTOFF, QueryMetrics


class TestQueryMetrics:
    """Tests for the QueryMetrics collector."""

    def test_instances_do_not_share_counts(self) -> None:
        """Each collector should register in its own registry."""
        first = QueryMetrics()
        second = QueryMetrics()

        first.record_fetch("derived", PATH_CUTOFF)

        assert first.sample("dip_fetches_total", kind="derived", path="cutoff") == 1.0
        assert second.sample("dip_fetches_total", kind="derived", path="cutoff") == 0.0

    def test_explicit_registry(self) -> None:
        registry = CollectorRegistry()
        metrics = QueryMetrics(registry=registry)

        metrics.record_error("unset_input")

        assert registry.get_sample_value("dip_errors_total", {"error_code": "unset_input"}) == 1.0

    def test_unrecorded_sample_is_zero(self) -> None:
        assert QueryMetrics().sample("dip_function_runs_total", query="never") == 0.0

    def test_generate_metrics_text(self) -> None:
        metrics = QueryMetrics()
        metrics.record_function_run("one_year_fee")

        output = metrics.generate_metrics()

        assert b"dip_function_runs_total" in output
        assert b'query="one_year_fee"' in output


class TestEngineMetrics:
    """Tests for the counts a database records while evaluating."""

    def test_first_fetch(self, fee_db, metrics: QueryMetrics) -> None:
        """A new derived key should count one run and its input reads."""
        fee_db.get("one_year_fee", 16)

        assert metrics.sample("dip_fetches_total", kind="derived", path="new") == 1.0
        assert metrics.sample("dip_fetches_total", kind="input", path="input") == 3.0
        assert metrics.sample("dip_function_runs_total", query="one_year_fee") == 1.0
        assert metrics.sample("dip_input_sets_total", input="base_fee") == 1.0

    def test_fresh_fetch(self, fee_db, metrics: QueryMetrics) -> None:
        fee_db.get("one_year_fee", 16)
        fee_db.get("one_year_fee", 16)

        assert metrics.sample("dip_fetches_total", kind="derived", path="fresh") == 1.0
        assert metrics.sample("dip_function_runs_total", query="one_year_fee") == 1.0

    def test_early_cutoff_reasons(self, fee_db, metrics: QueryMetrics) -> None:
        """Unchanged dependencies and unchanged values should be counted separately."""
        fee_db.get("one_year_fee", 17)

        # one_year_fee(17) never read the discount amount
        fee_db.set("discount_amount", 40)
        assert fee_db.get("one_year_fee", 17) == 100
        assert metrics.sample("dip_early_cutoffs_total", reason="dependencies") == 1.0
        assert metrics.sample("dip_fetches_total", kind="derived", path="cutoff") == 1.0

        # same value, but the revision still advances
        fee_db.set("base_fee", 100)
        assert fee_db.get("one_year_fee", 17) == 100
        assert metrics.sample("dip_early_cutoffs_total", reason="value") == 1.0
        assert metrics.sample("dip_fetches_total", kind="derived", path="recomputed") == 1.0
        assert metrics.sample("dip_function_runs_total", query="one_year_fee") == 2.0

    def test_errors_counted_once_per_call(self, metrics: QueryMetrics) -> None:
        """A nested failure should be counted for the outermost call only."""
        db = build_fee_database(metrics=metrics)
        db.set("base_fee", 100)

        with pytest.raises(UnsetInputError):
            db.get("two_year_fee", 16)

        assert metrics.sample("dip_errors_total", error_code="unset_input") == 1.0
