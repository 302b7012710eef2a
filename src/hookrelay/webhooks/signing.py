"""HMAC-SHA256 signing for webhook payloads.

Receivers verify a delivery by recomputing the HMAC over the raw request
body with their shared secret and comparing it, in constant time, to the
``X-Webhook-Signature`` header with the ``sha256=`` prefix removed.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookrelay.models import WebhookEnvelope

SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(payload: str | bytes, secret: str) -> str:
    """Compute HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Serialized payload to sign.
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    signature = hmac.new(
        key=secret.encode("utf-8"),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{signature}"


def sign_envelope(envelope: WebhookEnvelope, secret: str) -> str:
    """Sign the canonical serialization of an envelope.

    This is the same serialization used for the request body.
    """
    return compute_signature(envelope.to_json(), secret)


def verify_signature(payload: str | bytes, secret: str, signature: str) -> bool:
    """Verify HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Raw request body that was signed.
        secret: Shared secret for HMAC.
        signature: Header value to verify (format: "sha256=<hex_digest>").

    Returns:
        True if signature is valid, False otherwise (including malformed headers).
    """
    if not isinstance(signature, str) or not signature.startswith(SIGNATURE_PREFIX):
        return False

    received = signature[len(SIGNATURE_PREFIX) :]
    if not received.isascii():
        return False

    expected = compute_signature(payload, secret)[len(SIGNATURE_PREFIX) :]
    return hmac.compare_digest(expected.encode("ascii"), received.encode("ascii"))
