"""HTTP API for the DB QA engine."""

from dbqa.api.app import create_app

__all__ = ["create_app"]
