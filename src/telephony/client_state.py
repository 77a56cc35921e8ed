"""Client-state tokens round-tripped through Telnyx gather actions.

Telnyx echoes ``client_state`` back verbatim on the resulting webhook. The
value sent is the base64 of a plain discriminator, so comparisons on receipt
must encode the expected discriminator rather than compare raw strings.
"""

from __future__ import annotations

import base64
from enum import Enum


def encode_client_state(plain: str) -> str:
    return base64.b64encode(plain.encode("utf-8")).decode("ascii")


def client_state_matches(incoming: str | None, plain: str) -> bool:
    return (incoming or "") == encode_client_state(plain)


class GatherPurpose(str, Enum):
    """Which step of the call a digit-collection result belongs to."""

    COLLECT_TARGET = "collect-target"
    LISTEN_WHISPER = "listen-whisper"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_client_state(cls, token: str | None) -> GatherPurpose | None:
        for purpose in cls:
            if client_state_matches(token, purpose.value):
                return purpose
        return None
