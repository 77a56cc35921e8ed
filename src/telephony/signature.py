"""Telnyx webhook signature verification (Ed25519 over ``timestamp|body``)."""

from __future__ import annotations

import base64
import logging

from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

LOGGER = logging.getLogger(__name__)

SIGNATURE_HEADER = "telnyx-signature-ed25519"
TIMESTAMP_HEADER = "telnyx-timestamp"


def signed_message(raw_body: bytes, timestamp: str) -> bytes:
    return timestamp.encode("ascii") + b"|" + raw_body


def verify_signature(
    raw_body: bytes,
    signature: str | None,
    timestamp: str | None,
    public_key: str | None,
) -> bool:
    """Return True when the webhook is authentic.

    Without a configured public key every request passes. With a key, a
    missing header or any decoding/crypto failure rejects the request.
    """

    if not public_key:
        return True
    if not signature or not timestamp:
        return False

    try:
        verify_key = VerifyKey(base64.b64decode(public_key))
        verify_key.verify(signed_message(raw_body, timestamp), base64.b64decode(signature))
    except (CryptoError, ValueError, TypeError) as exc:
        LOGGER.debug("Signature verification failed: %s", exc)
        return False
    return True


class SignatureVerifier:
    """Verifier bound to the configured public key."""

    def __init__(self, public_key: str | None) -> None:
        self._public_key = public_key
        if not public_key:
            LOGGER.warning(
                "TELNYX_PUBLIC_KEY is not set: webhook signature verification is DISABLED "
                "and any caller can drive the call flow. Configure the key outside local development."
            )

    def __call__(self, raw_body: bytes, signature: str | None, timestamp: str | None) -> bool:
        return verify_signature(raw_body, signature, timestamp, self._public_key)
