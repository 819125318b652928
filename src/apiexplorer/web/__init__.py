"""HTTP surface of the explorer."""

from .server import create_app, start_server

__all__ = ["create_app", "start_server"]
