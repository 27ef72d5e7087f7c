"""Command-line interface for dip."""
