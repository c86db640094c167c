"""Stepwise command line interface."""

from stepwise.cli.main import app

__all__ = ["app"]
