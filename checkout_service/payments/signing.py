import hashlib
import hmac
import time
from typing import Optional


def sign_webhook_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header for a locally generated webhook delivery."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"
