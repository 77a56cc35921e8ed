"""Typed call events decoded from Telnyx webhook envelopes.

The router never looks at raw event-type strings: every envelope is turned
into exactly one of the variants below, with anything it has no transition
for becoming an ``IgnoredEvent`` that still carries enough detail to log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from coach.schemas import WebhookEnvelope
from telephony.client_state import GatherPurpose

INBOUND_DIRECTIONS = frozenset({"incoming", "inbound"})


@dataclass(frozen=True, slots=True)
class InboundCallInitiated:
    leg_id: str
    caller_number: str | None


@dataclass(frozen=True, slots=True)
class DigitsGathered:
    leg_id: str
    digits: str
    purpose: GatherPurpose


@dataclass(frozen=True, slots=True)
class LegAnswered:
    leg_id: str
    direction: str | None = None


@dataclass(frozen=True, slots=True)
class LegHungUp:
    leg_id: str


@dataclass(frozen=True, slots=True)
class IgnoredEvent:
    event_type: str
    leg_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


CallEvent = Union[InboundCallInitiated, DigitsGathered, LegAnswered, LegHungUp, IgnoredEvent]


def decode_event(envelope: WebhookEnvelope) -> CallEvent:
    event_type = envelope.data.event_type
    payload = envelope.data.payload
    leg_id = payload.call_control_id

    if event_type.startswith("conference.participant."):
        return IgnoredEvent(
            event_type,
            leg_id,
            {
                "conference_id": payload.extra("conference_id"),
                "participant_id": payload.extra("participant_id"),
                "role": payload.extra("role"),
            },
        )
    if event_type == "call.conversation_insights.generated":
        return IgnoredEvent(event_type, leg_id, {"insights": payload.model_dump(by_alias=True)})

    if not leg_id:
        return IgnoredEvent(event_type, None, {"reason": "missing call_control_id"})

    if event_type == "call.initiated":
        if (payload.direction or "").lower() in INBOUND_DIRECTIONS:
            return InboundCallInitiated(leg_id=leg_id, caller_number=payload.caller_number())
        return IgnoredEvent(event_type, leg_id, {"direction": payload.direction})

    if event_type == "call.gather.ended":
        purpose = GatherPurpose.from_client_state(payload.client_state)
        if purpose is not None:
            return DigitsGathered(leg_id=leg_id, digits=payload.digits or "", purpose=purpose)

    if event_type == "call.answered":
        return LegAnswered(leg_id=leg_id, direction=payload.direction)

    if event_type == "call.hangup":
        return LegHungUp(leg_id=leg_id)

    if event_type.startswith("call.speak."):
        return IgnoredEvent(event_type, leg_id, {"state": payload.extra("state")})
    if event_type.startswith("call.gather."):
        return IgnoredEvent(
            event_type,
            leg_id,
            {"digits": payload.digits, "client_state": payload.client_state},
        )
    return IgnoredEvent(event_type, leg_id, {"direction": payload.direction})
