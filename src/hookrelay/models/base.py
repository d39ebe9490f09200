"""Shared helpers for hookrelay models."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from uuid import uuid4

# Prefix that makes leaked secrets easy to recognize in logs and scanners
SECRET_PREFIX = "whsec_"


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def generate_secret() -> str:
    """Generate a signing secret for a new endpoint.

    Returns:
        ``whsec_`` followed by 64 hex characters (32 random bytes).
    """
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def truncate(text: str, max_length: int, marker: str = "... [truncated]") -> str:
    """Truncate text to max_length characters, appending a marker when cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + marker
