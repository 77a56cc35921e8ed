from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from coach.errors import CallControlError
from integrations.telnyx_client import GatherOptions, TelnyxCallControl, TelnyxConfig

CONFIG = TelnyxConfig(
    api_key="KEY-test",
    base_url="https://api.telnyx.test/v2",
    timeout_seconds=1.0,
    connection_id="conn-1",
    from_number="+61290000000",
    voice="female",
    language="en-AU",
)


class Recorder:
    def __init__(self, responder=None) -> None:
        self.requests: list[httpx.Request] = []
        self._responder = responder or (lambda request: httpx.Response(200, json={"data": {}}))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def _client(recorder: Recorder) -> TelnyxCallControl:
    return TelnyxCallControl(CONFIG, transport=httpx.MockTransport(recorder))


def _run(coro):
    return asyncio.run(coro)


def test_answer_posts_to_call_action_with_bearer_auth():
    recorder = Recorder()
    _run(_client(recorder).answer("v3:leg-1"))

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v2/calls/v3:leg-1/actions/answer"
    assert request.headers["authorization"] == "Bearer KEY-test"
    assert recorder.body() == {}


def test_speak_always_sends_voice_and_language():
    recorder = Recorder()
    _run(_client(recorder).speak("leg-1", "Hello"))

    assert recorder.requests[0].url.path.endswith("/calls/leg-1/actions/speak")
    assert recorder.body() == {"payload": "Hello", "voice": "female", "language": "en-AU"}


def test_gather_encodes_client_state():
    recorder = Recorder()
    options = GatherOptions(minimum_digits=2, maximum_digits=2, inter_digit_timeout_millis=5000)
    _run(_client(recorder).gather("leg-1", "listen-whisper", options))

    body = recorder.body()
    assert base64.b64decode(body["client_state"]) == b"listen-whisper"
    assert body["minimum_digits"] == 2
    assert body["maximum_digits"] == 2
    assert body["inter_digit_timeout_millis"] == 5000
    assert "terminating_digit" not in body


def test_gather_using_speak_carries_prompt_and_speech_config():
    recorder = Recorder()
    options = GatherOptions(minimum_digits=4, maximum_digits=15, terminating_digit="#")
    _run(_client(recorder).gather_using_speak("leg-1", "Enter the number", "collect-target", options))

    body = recorder.body()
    assert recorder.requests[0].url.path.endswith("/calls/leg-1/actions/gather_using_speak")
    assert body["payload"] == "Enter the number"
    assert body["terminating_digit"] == "#"
    assert body["voice"] == "female"
    assert body["language"] == "en-AU"
    assert base64.b64decode(body["client_state"]) == b"collect-target"


def test_create_call_returns_provider_response():
    recorder = Recorder(lambda request: httpx.Response(200, json={"data": {"call_control_id": "v3:out-1"}}))
    response = _run(_client(recorder).create_call("+61412345678"))

    assert response["data"]["call_control_id"] == "v3:out-1"
    assert recorder.requests[0].url.path == "/v2/calls"
    assert recorder.body() == {"connection_id": "conn-1", "to": "+61412345678", "from": "+61290000000"}


def test_conference_actions():
    recorder = Recorder(lambda request: httpx.Response(200, json={"data": {"id": "conf-9"}}))
    client = _client(recorder)

    async def _scenario():
        created = await client.create_conference("agent-1", "conf-123")
        await client.join_conference("conf-9", "out-1")
        await client.start_assistant("agent-1", "assistant-1")
        return created

    created = _run(_scenario())
    assert created["data"]["id"] == "conf-9"
    assert [r.url.path for r in recorder.requests] == [
        "/v2/conferences",
        "/v2/conferences/conf-9/actions/join",
        "/v2/calls/agent-1/actions/ai_assistant_start",
    ]
    assert recorder.body(0) == {"call_control_id": "agent-1", "name": "conf-123"}
    assert recorder.body(1) == {"call_control_id": "out-1", "role": "participant"}
    assert recorder.body(2) == {"assistant_id": "assistant-1"}


def test_empty_success_body_returns_empty_dict():
    recorder = Recorder(lambda request: httpx.Response(200))
    assert _run(_client(recorder).hangup("leg-1", reason="invalid")) == {}


def test_http_error_is_logged_and_raised(caplog):
    recorder = Recorder(
        lambda request: httpx.Response(
            422,
            json={"errors": [{"title": "Call has already ended"}]},
            headers={"x-request-id": "req-77"},
        )
    )

    with caplog.at_level("ERROR"), pytest.raises(CallControlError) as excinfo:
        _run(_client(recorder).speak("leg-1", "Hello"))

    assert excinfo.value.status_code == 422
    assert excinfo.value.action == "speak"
    assert excinfo.value.path == "/calls/leg-1/actions/speak"
    assert "telnyx.err" in caplog.text
    assert "req-77" in caplog.text
    assert "Call has already ended" in caplog.text


def test_transport_error_is_raised_as_call_control_error(caplog):
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with caplog.at_level("ERROR"), pytest.raises(CallControlError) as excinfo:
        _run(_client(Recorder(_boom)).answer("leg-1"))

    assert excinfo.value.status_code is None
    assert "ConnectTimeout" in str(excinfo.value)
    assert "telnyx.err" in caplog.text


def test_success_is_logged_with_request_id(caplog):
    recorder = Recorder(lambda request: httpx.Response(200, json={}, headers={"x-telnyx-request-id": "req-1"}))
    with caplog.at_level("INFO"):
        _run(_client(recorder).answer("leg-1"))
    assert "telnyx.ok" in caplog.text
    assert "req-1" in caplog.text
