from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before importing modules that read settings.
os.environ.setdefault("TELNYX_API_KEY", "KEY-test")
os.environ.setdefault("FROM_NUMBER", "+61290000000")
os.environ.setdefault("CONNECTION_ID", "conn-test")
os.environ.pop("TELNYX_PUBLIC_KEY", None)
os.environ.pop("ALLOW_LIST", None)
os.environ.pop("AI_ASSISTANT_ID", None)

from coach.router import CallRouter, CoachScript  # noqa: E402
from coach.sessions import SessionStore  # noqa: E402
from telephony.numbers import parse_allow_list  # noqa: E402

AGENT_NUMBER = "0411111111"
ALLOWED = "+61411111111"


class FakeCallControl:
    """Records every action and hands out predictable leg/conference ids."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.fail_on: set[str] = set()
        self._next_leg = 0
        self._next_conference = 0

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        if name in self.fail_on:
            from coach.errors import CallControlError

            raise CallControlError(name, f"/fake/{name}", status_code=422, detail="rejected by fake")

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def of(self, name: str) -> list[tuple[tuple[Any, ...], dict[str, Any]]]:
        return [(args, kwargs) for call_name, args, kwargs in self.calls if call_name == name]

    async def answer(self, leg_id: str) -> dict:
        self._record("answer", leg_id)
        return {}

    async def hangup(self, leg_id: str, *, reason: str = "hangup") -> dict:
        self._record("hangup", leg_id, reason=reason)
        return {}

    async def speak(self, leg_id: str, text: str) -> dict:
        self._record("speak", leg_id, text)
        return {}

    async def gather(self, leg_id: str, client_state: str, options) -> dict:
        self._record("gather", leg_id, client_state, options)
        return {}

    async def gather_using_speak(self, leg_id: str, prompt: str, client_state: str, options) -> dict:
        self._record("gather_using_speak", leg_id, prompt, client_state, options)
        return {}

    async def create_call(self, to: str) -> dict:
        self._record("create_call", to)
        self._next_leg += 1
        return {"data": {"call_control_id": f"out-{self._next_leg}"}}

    async def create_conference(self, anchor_leg_id: str, name: str) -> dict:
        self._record("create_conference", anchor_leg_id, name)
        self._next_conference += 1
        return {"data": {"id": f"conf-{self._next_conference}"}}

    async def join_conference(self, conference_id: str, leg_id: str, *, role: str = "participant") -> dict:
        self._record("join_conference", conference_id, leg_id, role=role)
        return {}

    async def start_assistant(self, leg_id: str, assistant_id: str) -> dict:
        self._record("start_assistant", leg_id, assistant_id)
        return {}


SCRIPT = CoachScript(
    collect_prompt="Enter the number to call, then press hash.",
    rejection_message="This number is not authorised. Goodbye.",
    invalid_number_message="Invalid number. Goodbye.",
    whisper_trigger="*2",
    whisper_text="Whisper: recommend the ninety nine per user plan.",
)


def build_router(
    actions: FakeCallControl,
    *,
    allow_list: str | None = None,
    assistant_id: str | None = None,
) -> CallRouter:
    return CallRouter(
        actions,
        SessionStore(),
        SCRIPT,
        allow_list=parse_allow_list(allow_list),
        assistant_id=assistant_id,
    )


@pytest.fixture()
def actions() -> FakeCallControl:
    return FakeCallControl()


@pytest.fixture()
def call_router(actions: FakeCallControl) -> CallRouter:
    return build_router(actions, allow_list=AGENT_NUMBER)


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app, call_router):
    import api.dependencies as deps
    from telephony.signature import SignatureVerifier

    app.dependency_overrides[deps.get_call_router] = lambda: call_router
    app.dependency_overrides[deps.get_signature_verifier] = lambda: SignatureVerifier(None)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
