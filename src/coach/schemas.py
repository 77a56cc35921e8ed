"""Pydantic models for inbound Telnyx webhook envelopes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookPayload(BaseModel):
    """The ``data.payload`` object of a Telnyx Call Control webhook.

    Only fields the router reads are declared; everything else is kept as
    extra attributes so informational events can still be logged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    call_control_id: str | None = None
    direction: str | None = None
    from_: str | dict[str, Any] | None = Field(default=None, alias="from")
    from_number: str | None = None
    caller_id_number: str | None = None
    digits: str | None = None
    client_state: str | None = None

    def caller_number(self) -> str | None:
        if isinstance(self.from_, dict):
            number = self.from_.get("number")
            if number:
                return str(number)
        elif self.from_:
            return self.from_
        return self.from_number or self.caller_id_number

    def extra(self, key: str) -> Any:
        return (self.model_extra or {}).get(key)


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: str
    id: str | None = None
    payload: WebhookPayload = Field(default_factory=WebhookPayload)


class WebhookEnvelope(BaseModel):
    data: WebhookData
