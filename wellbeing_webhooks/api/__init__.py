"""HTTP surface of the ingestion service."""

from .server import create_app

__all__ = ["create_app"]
