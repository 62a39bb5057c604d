"""Command-line interface (typer + rich)."""

from durable_mr.cli.app import app

__all__ = ["app"]
