"""REST API layer for ledgerctl.

Exposes:
    create_app -- FastAPI application factory.
"""

from ledgerctl.api.app import create_app

__all__ = ["create_app"]
