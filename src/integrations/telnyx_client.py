"""Telnyx Call Control REST actions.

Every action is a POST against the v2 API. Successes and failures are both
logged with the provider request id and the leg/conference the action targeted;
failures are raised as ``CallControlError`` so the caller decides whether the
rest of its event handling should continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from coach.errors import CallControlError
from config.settings import Settings, get_settings
from telephony.client_state import encode_client_state

LOGGER = logging.getLogger(__name__)

_REQUEST_ID_HEADERS = ("x-request-id", "x-telnyx-request-id")


@dataclass(frozen=True, slots=True)
class GatherOptions:
    minimum_digits: int
    maximum_digits: int
    terminating_digit: str | None = None
    inter_digit_timeout_millis: int | None = None

    def as_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "minimum_digits": self.minimum_digits,
            "maximum_digits": self.maximum_digits,
        }
        if self.terminating_digit is not None:
            body["terminating_digit"] = self.terminating_digit
        if self.inter_digit_timeout_millis is not None:
            body["inter_digit_timeout_millis"] = self.inter_digit_timeout_millis
        return body


@dataclass(frozen=True, slots=True)
class TelnyxConfig:
    api_key: str
    base_url: str
    timeout_seconds: float
    connection_id: str
    from_number: str
    voice: str
    language: str


def get_telnyx_config(settings: Settings | None = None) -> TelnyxConfig:
    settings = settings or get_settings()
    return TelnyxConfig(
        api_key=settings.telnyx_api_key,
        base_url=settings.telnyx_api_base_url.rstrip("/"),
        timeout_seconds=settings.telnyx_timeout_seconds,
        connection_id=settings.connection_id,
        from_number=settings.from_number,
        voice=settings.tts_voice,
        language=settings.tts_language,
    )


def _request_id(response: httpx.Response | None) -> str | None:
    if response is None:
        return None
    for header in _REQUEST_ID_HEADERS:
        value = response.headers.get(header)
        if value:
            return value
    return None


def _error_body(response: httpx.Response) -> str:
    try:
        return str(response.json())
    except ValueError:
        return response.text


class TelnyxCallControl:
    """Async client for the Call Control actions the coach uses."""

    def __init__(self, config: TelnyxConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Authorization": f"Bearer {config.api_key}"},
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _speech(self) -> dict[str, str]:
        return {"voice": self._config.voice, "language": self._config.language}

    async def _post(self, path: str, body: dict[str, Any], label: str, **meta: Any) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_body(exc.response)
            LOGGER.error(
                "telnyx.err label=%s path=%s status=%s request_id=%s err=%s meta=%s",
                label,
                path,
                exc.response.status_code,
                _request_id(exc.response),
                detail,
                meta,
            )
            raise CallControlError(label, path, status_code=exc.response.status_code, detail=detail) from exc
        except httpx.HTTPError as exc:
            LOGGER.error(
                "telnyx.err label=%s path=%s status=None err=%s: %s meta=%s",
                label,
                path,
                type(exc).__name__,
                exc,
                meta,
            )
            raise CallControlError(label, path, detail=f"{type(exc).__name__}: {exc}") from exc

        LOGGER.info(
            "telnyx.ok label=%s path=%s status=%s request_id=%s meta=%s",
            label,
            path,
            response.status_code,
            _request_id(response),
            meta,
        )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    async def answer(self, leg_id: str) -> dict[str, Any]:
        return await self._post(f"/calls/{leg_id}/actions/answer", {}, "answer", leg_id=leg_id)

    async def hangup(self, leg_id: str, *, reason: str = "hangup") -> dict[str, Any]:
        return await self._post(f"/calls/{leg_id}/actions/hangup", {}, f"hangup.{reason}", leg_id=leg_id)

    async def speak(self, leg_id: str, text: str) -> dict[str, Any]:
        LOGGER.info("action.speak leg=%s text=%r", leg_id, text)
        return await self._post(
            f"/calls/{leg_id}/actions/speak",
            {"payload": text, **self._speech()},
            "speak",
            leg_id=leg_id,
        )

    async def gather(self, leg_id: str, client_state: str, options: GatherOptions) -> dict[str, Any]:
        LOGGER.info("action.gather leg=%s client_state=%s", leg_id, client_state)
        body = {**options.as_body(), "client_state": encode_client_state(client_state)}
        return await self._post(f"/calls/{leg_id}/actions/gather", body, "gather", leg_id=leg_id)

    async def gather_using_speak(
        self,
        leg_id: str,
        prompt: str,
        client_state: str,
        options: GatherOptions,
    ) -> dict[str, Any]:
        LOGGER.info("action.gather_using_speak leg=%s prompt=%r client_state=%s", leg_id, prompt, client_state)
        body = {
            "payload": prompt,
            **options.as_body(),
            "client_state": encode_client_state(client_state),
            **self._speech(),
        }
        return await self._post(
            f"/calls/{leg_id}/actions/gather_using_speak",
            body,
            "gather_using_speak",
            leg_id=leg_id,
        )

    async def create_call(self, to: str) -> dict[str, Any]:
        LOGGER.info("action.create_outbound_leg to=%s", to)
        body = {"connection_id": self._config.connection_id, "to": to, "from": self._config.from_number}
        return await self._post("/calls", body, "create_call", to=to)

    async def create_conference(self, anchor_leg_id: str, name: str) -> dict[str, Any]:
        return await self._post(
            "/conferences",
            {"call_control_id": anchor_leg_id, "name": name},
            "conference.create",
            anchor_leg_id=anchor_leg_id,
        )

    async def join_conference(self, conference_id: str, leg_id: str, *, role: str = "participant") -> dict[str, Any]:
        return await self._post(
            f"/conferences/{conference_id}/actions/join",
            {"call_control_id": leg_id, "role": role},
            "conference.join",
            conference_id=conference_id,
            leg_id=leg_id,
            role=role,
        )

    async def start_assistant(self, leg_id: str, assistant_id: str) -> dict[str, Any]:
        return await self._post(
            f"/calls/{leg_id}/actions/ai_assistant_start",
            {"assistant_id": assistant_id},
            "assistant.start",
            leg_id=leg_id,
            assistant_id=assistant_id,
        )


def build_call_control(settings: Settings | None = None) -> TelnyxCallControl:
    return TelnyxCallControl(get_telnyx_config(settings))
