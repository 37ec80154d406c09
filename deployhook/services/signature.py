"""HMAC verification for inbound repository webhooks."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any


logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature of ``body`` under ``secret``."""

    digest = hmac.new(secret.encode("utf-8"), bytes(body), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: Any, signature: str | None, secret: str | None) -> bool:
    """Return ``True`` when ``signature`` authenticates the raw ``body``.

    Without a configured secret every request passes; callers are expected to
    warn about that mode. With a secret, the signature must be present and the
    body must still be the exact bytes received on the wire: a payload that
    has already been decoded cannot be trusted to reproduce them.
    """

    if not secret:
        return True
    if not signature:
        return False
    if not isinstance(body, (bytes, bytearray)):
        logger.warning(
            "Webhook body is not raw bytes; refusing to verify a re-serialised payload",
            extra={"event": "webhook.body_not_raw", "body_type": type(body).__name__},
        )
        return False

    expected = compute_signature(body, secret)
    try:
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
    except (TypeError, ValueError, AttributeError):
        return False


__all__ = ["SIGNATURE_PREFIX", "compute_signature", "verify_signature"]
