"""Reference relay server for local development."""

from .relay import RelayHub, create_app

__all__ = [
    "create_app",
    "RelayHub",
]
