"""Correlation token helpers for request/response frames."""

from __future__ import annotations

import secrets


NONCE_BYTES = 16


def generate_nonce() -> str:
    """Generate a URL-safe nonce for an outbound request."""
    return secrets.token_urlsafe(NONCE_BYTES)
