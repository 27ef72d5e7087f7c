"""Main CLI entry point for dip.

Provides the command-line interface for running the bundled walkthrough.
"""

import click

from dip.cli.walkthrough import walkthrough


@click.group()
@click.version_option(version="0.1.0", prog_name="dip")
def cli() -> None:
    """dip - demand-driven incremental query database."""
    pass


cli.add_command(walkthrough)


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
