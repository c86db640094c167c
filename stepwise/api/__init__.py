"""Stepwise HTTP API."""

from stepwise.api.main import app

__all__ = ["app"]
