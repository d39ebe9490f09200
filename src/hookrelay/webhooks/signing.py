"""HMAC-SHA256 signing of webhook bodies.

The signature covers the exact bytes sent on the wire. Receivers
recompute it over the raw request body with the endpoint secret and
compare it to the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac

from hookrelay.models import generate_secret


def compute_signature(secret: str, body: bytes) -> str:
    """Compute the HMAC-SHA256 signature of a webhook body.

    Args:
        secret: Endpoint signing secret.
        body: Exact request body bytes.

    Returns:
        Lowercase hex digest, without any prefix.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify a webhook signature in constant time.

    Args:
        secret: Endpoint signing secret.
        body: Exact request body bytes as received.
        signature: Value of the X-Webhook-Signature header.

    Returns:
        True if the signature matches.
    """
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected, signature.strip().lower())


__all__ = ["compute_signature", "generate_secret", "verify_signature"]
