"""HTTP API for Wagerbook."""

from wagerbook.api.server import create_app

__all__ = ["create_app"]
