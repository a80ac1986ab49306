"""HTTP API for the cache bid service."""

from .server import create_app, run_server

__all__ = ["create_app", "run_server"]
