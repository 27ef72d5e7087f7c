"""Fee-quote walkthrough.

A training company quotes subscription fees. There is a fixed yearly base
fee, and customers up to a certain age get a discount:

    one_year_fee(age) = base_fee - discount_amount   if age <= discount_age_limit
                        base_fee                     otherwise
    two_year_fee(age) = one_year_fee(age) + one_year_fee(age + 1)

The walkthrough sets the inputs, runs the derived queries, changes inputs
and shows which cached results are reused and which are recomputed.
"""

from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from dip.engine import Database, DatabaseConfig, QueryRegistry
from dip.observability.events import EventSink
from dip.observability.logging import setup_logging
from dip.observability.metrics import QueryMetrics

console = Console()

BASE_FEE = "base_fee"
DISCOUNT_AMOUNT = "discount_amount"
DISCOUNT_AGE_LIMIT = "discount_age_limit"
ONE_YEAR_FEE = "one_year_fee"
TWO_YEAR_FEE = "two_year_fee"


def one_year_fee(db: Database, age: int) -> int:
    if age <= db.get(DISCOUNT_AGE_LIMIT):
        return db.get(BASE_FEE) - db.get(DISCOUNT_AMOUNT)
    return db.get(BASE_FEE)


def two_year_fee(db: Database, age: int) -> int:
    # equals 2 * one_year_fee(age) unless age is exactly the discount age limit
    return db.get(ONE_YEAR_FEE, age) + db.get(ONE_YEAR_FEE, age + 1)


def build_fee_registry() -> QueryRegistry:
    """Declare the fee inputs and register the fee queries."""
    registry = QueryRegistry()
    registry.declare_input(BASE_FEE, DISCOUNT_AMOUNT, DISCOUNT_AGE_LIMIT)
    registry.register(ONE_YEAR_FEE, one_year_fee)
    registry.register(TWO_YEAR_FEE, two_year_fee)
    return registry


def build_fee_database(
    config: Optional[DatabaseConfig] = None,
    sink: Optional[EventSink] = None,
    metrics: Optional[QueryMetrics] = None,
) -> Database:
    """Create a database wired with the fee queries. No inputs are set."""
    return Database(build_fee_registry(), config=config, sink=sink, metrics=metrics)


# (narrative note, action, expected value or None for input mutations)
STEPS: list[tuple[str, tuple, Optional[int]]] = [
    ("Before we can query fees we need to set the input values.", ("set", BASE_FEE, 100), None),
    ("", ("set", DISCOUNT_AMOUNT, 30), None),
    ("", ("set", DISCOUNT_AGE_LIMIT, 16), None),
    (
        "16 is the maximum age for a discount, so the one year fee for a 16 year old "
        "is base_fee - discount_amount.",
        ("get", ONE_YEAR_FEE, 16),
        70,
    ),
    (
        "17 is over the discount age limit, so the one year fee for a 17 year old is base_fee.",
        ("get", ONE_YEAR_FEE, 17),
        100,
    ),
    (
        "two_year_fee(17) reuses the cached one_year_fee(17) and computes one_year_fee(18).",
        ("get", TWO_YEAR_FEE, 17),
        200,
    ),
    (
        "Update the discount given to people under the age limit.",
        ("set", DISCOUNT_AMOUNT, 40),
        None,
    ),
    (
        "one_year_fee(17) was verified at an older revision, but neither the age limit nor the "
        "base fee changed, so its memo is still valid.",
        ("get", ONE_YEAR_FEE, 17),
        100,
    ),
    (
        "16 <= discount_age_limit, so one_year_fee(16) read the discount amount and must be "
        "recomputed.",
        ("get", ONE_YEAR_FEE, 16),
        60,
    ),
    (
        "Funding criteria changed: 17 year olds now get the discount too.",
        ("set", DISCOUNT_AGE_LIMIT, 17),
        None,
    ),
    (
        "one_year_fee(17) and one_year_fee(18) both read the age limit and are rerun. "
        "one_year_fee(18) is unchanged, one_year_fee(17) is not, so two_year_fee(17) is rerun.",
        ("get", TWO_YEAR_FEE, 17),
        160,
    ),
]


def note(message: str) -> None:
    console.print()
    for line in message.splitlines():
        console.print(f"[bold]**[/bold]  {line.strip()}")
    console.print()


def run_walkthrough(db: Database) -> list[tuple[str, int, int]]:
    """Play every step against db.

    Returns:
        (query, expected, actual) for each derived query that was run
    """
    results: list[tuple[str, int, int]] = []
    for message, action, expected in STEPS:
        if message:
            note(message)
        verb, name, argument = action
        if verb == "set":
            db.set(name, argument)
            continue
        actual = db.get(name, argument)
        results.append((f"{name}({argument})", expected, actual))
    return results


@click.command(name="walkthrough")
@click.option("--trace/--no-trace", default=True, help="Log every engine event")
@click.option("--json-logs", is_flag=True, default=False, help="Output logs as JSON")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level",
)
def walkthrough(trace: bool, json_logs: bool, log_level: str) -> None:
    """Run the fee-quote walkthrough and show cache reuse."""
    config = DatabaseConfig(
        trace=trace, metrics_enabled=True, log_level=log_level, json_logs=json_logs
    )
    setup_logging(log_level=config.log_level, json_logs=config.json_logs)

    db = build_fee_database(config=config)
    results = run_walkthrough(db)

    table = Table(title=f"Results at revision {db.revision}")
    table.add_column("Query", style="cyan", no_wrap=True)
    table.add_column("Expected", justify="right")
    table.add_column("Actual", justify="right")
    table.add_column("OK")
    failures = 0
    for query, expected, actual in results:
        ok = expected == actual
        failures += 0 if ok else 1
        mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
        table.add_row(query, str(expected), str(actual), mark)
    console.print(table)

    if db.metrics is not None:
        runs = sum(
            db.metrics.sample("dip_function_runs_total", query=name)
            for name in (ONE_YEAR_FEE, TWO_YEAR_FEE)
        )
        console.print(f"Query functions run: {int(runs)}")

    if failures:
        raise click.ClickException(f"{failures} quote(s) did not match the expected value")
