"""Command-line interface (``dbqa``)."""

from dbqa.cli.app import app

__all__ = ["app"]
