"""Call-control state machine for the whisper coach.

One agent call moves through three stages::

    inbound call  ->  COLLECTING  (agent keys in the destination)
    digits        ->  DIALLING    (outbound leg created, id recorded as pending)
    leg answered  ->  LIVE        (conference up, listening for whisper digits)
    hangup        ->  session removed

Telnyx reports the outbound leg answering with nothing but that leg's id, so
the session is found by the pending outbound leg id it recorded when dialling.
Events may be duplicated or arrive concurrently; each handler holds the agent
leg's lock while it reads and advances the session and re-checks the stage
before acting.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

from coach.errors import CallControlError
from coach.events import (
    CallEvent,
    DigitsGathered,
    IgnoredEvent,
    InboundCallInitiated,
    LegAnswered,
    LegHungUp,
)
from coach.sessions import CallStage, SessionStore
from integrations.telnyx_client import GatherOptions
from telephony.client_state import GatherPurpose
from telephony.numbers import to_e164

LOGGER = logging.getLogger(__name__)

COLLECT_TARGET_GATHER = GatherOptions(minimum_digits=4, maximum_digits=15, terminating_digit="#")
LISTEN_WHISPER_GATHER = GatherOptions(minimum_digits=2, maximum_digits=2, inter_digit_timeout_millis=5000)


class CallControl(Protocol):
    async def answer(self, leg_id: str) -> dict[str, Any]: ...

    async def hangup(self, leg_id: str, *, reason: str = ...) -> dict[str, Any]: ...

    async def speak(self, leg_id: str, text: str) -> dict[str, Any]: ...

    async def gather(self, leg_id: str, client_state: str, options: GatherOptions) -> dict[str, Any]: ...

    async def gather_using_speak(
        self, leg_id: str, prompt: str, client_state: str, options: GatherOptions
    ) -> dict[str, Any]: ...

    async def create_call(self, to: str) -> dict[str, Any]: ...

    async def create_conference(self, anchor_leg_id: str, name: str) -> dict[str, Any]: ...

    async def join_conference(self, conference_id: str, leg_id: str, *, role: str = ...) -> dict[str, Any]: ...

    async def start_assistant(self, leg_id: str, assistant_id: str) -> dict[str, Any]: ...


@dataclass(frozen=True, slots=True)
class CoachScript:
    """What the coach says, and which digits trigger the whisper."""

    collect_prompt: str
    rejection_message: str
    invalid_number_message: str
    whisper_trigger: str
    whisper_text: str


def _response_id(response: dict[str, Any], key: str, action: str, path: str) -> str:
    data = response.get("data") if isinstance(response, dict) else None
    value = data.get(key) if isinstance(data, dict) else None
    if not value:
        raise CallControlError(action, path, detail=f"response did not include data.{key}")
    return str(value)


class CallRouter:
    def __init__(
        self,
        actions: CallControl,
        store: SessionStore,
        script: CoachScript,
        *,
        allow_list: frozenset[str] = frozenset(),
        country_code: str = "61",
        assistant_id: str | None = None,
    ) -> None:
        self._actions = actions
        self._store = store
        self._script = script
        self._allow_list = allow_list
        self._country_code = country_code
        self._assistant_id = assistant_id

    @property
    def store(self) -> SessionStore:
        return self._store

    async def dispatch(self, event: CallEvent) -> None:
        """Handle one event, logging instead of raising.

        Runs detached from the webhook request, so nothing can be reported back
        to Telnyx; a failure aborts the rest of this event only.
        """

        try:
            await self.handle(event)
        except CallControlError as exc:
            LOGGER.error("webhook.error event=%s leg=%s: %s", type(event).__name__, event.leg_id, exc)
        except Exception:
            LOGGER.exception("webhook.error event=%s leg=%s: unexpected failure", type(event).__name__, event.leg_id)

    async def handle(self, event: CallEvent) -> None:
        if isinstance(event, InboundCallInitiated):
            await self._on_inbound_call(event)
        elif isinstance(event, DigitsGathered):
            if event.purpose is GatherPurpose.COLLECT_TARGET:
                await self._on_target_collected(event)
            else:
                await self._on_whisper_digits(event)
        elif isinstance(event, LegAnswered):
            await self._on_leg_answered(event)
        elif isinstance(event, LegHungUp):
            await self._on_hangup(event)
        elif isinstance(event, IgnoredEvent):
            self._log_ignored(event)

    async def _on_inbound_call(self, event: InboundCallInitiated) -> None:
        leg_id = event.leg_id
        caller = to_e164(event.caller_number, self._country_code)
        LOGGER.info("call.initiated leg=%s from_raw=%s from=%s", leg_id, event.caller_number, caller)

        async with self._store.lock(leg_id):
            if leg_id in self._store:
                LOGGER.info("Duplicate call.initiated for tracked leg=%s; ignoring", leg_id)
                return

            try:
                await self._actions.answer(leg_id)

                if self._allow_list and caller and caller not in self._allow_list:
                    LOGGER.info("Rejected: caller %s not in allow-list (leg=%s)", caller, leg_id)
                    await self._actions.speak(leg_id, self._script.rejection_message)
                    await self._actions.hangup(leg_id, reason="unauthorised")
                    return
                if not caller:
                    LOGGER.warning("No caller ID on leg=%s; skipping allow-list check", leg_id)

                self._store.get_or_create(leg_id)
                await self._actions.gather_using_speak(
                    leg_id,
                    self._script.collect_prompt,
                    GatherPurpose.COLLECT_TARGET.value,
                    COLLECT_TARGET_GATHER,
                )
            finally:
                if leg_id not in self._store:
                    # rejected, or failed before a session existed
                    self._store.discard(leg_id)

    async def _on_target_collected(self, event: DigitsGathered) -> None:
        leg_id = event.leg_id
        if leg_id not in self._store:
            LOGGER.info("collect-target digits for untracked leg=%s; ignoring", leg_id)
            return
        async with self._store.lock(leg_id):
            session = self._store.get(leg_id)
            if session is None or session.stage is not CallStage.COLLECTING:
                LOGGER.info(
                    "collect-target digits for leg=%s outside the collecting stage (%s); ignoring",
                    leg_id,
                    session.stage if session else "no session",
                )
                return

            destination = to_e164(event.digits, self._country_code)
            LOGGER.info("collect_target.result leg=%s digits=%s to=%s", leg_id, event.digits, destination)

            if destination is None:
                try:
                    await self._actions.speak(leg_id, self._script.invalid_number_message)
                    await self._actions.hangup(leg_id, reason="invalid")
                finally:
                    self._store.discard(leg_id)
                return

            response = await self._actions.create_call(destination)
            outbound_leg_id = _response_id(response, "call_control_id", "create_call", "/calls")
            session.begin_dialling(outbound_leg_id)
            LOGGER.info(
                "state.updated.dialling agent_leg=%s pending_outbound_leg=%s to=%s",
                leg_id,
                outbound_leg_id,
                destination,
            )

    async def _on_leg_answered(self, event: LegAnswered) -> None:
        session = self._store.find_by_pending_leg(event.leg_id)
        if session is None:
            # The agent's own leg or a leg this process did not create.
            LOGGER.info("call.answered leg=%s direction=%s matches no pending outbound leg", event.leg_id, event.direction)
            return

        agent_leg_id = session.agent_leg_id
        async with self._store.lock(agent_leg_id):
            if self._store.get(agent_leg_id) is not session or session.stage is not CallStage.DIALLING:
                LOGGER.info(
                    "Duplicate call.answered for outbound leg=%s; session %s is %s",
                    event.leg_id,
                    agent_leg_id,
                    session.stage,
                )
                return

            LOGGER.info("outbound.answered.match agent_leg=%s outbound_leg=%s", agent_leg_id, event.leg_id)
            response = await self._actions.create_conference(agent_leg_id, f"conf-{int(time.time() * 1000)}")
            conference_id = _response_id(response, "id", "conference.create", "/conferences")
            LOGGER.info("conference.created conference=%s", conference_id)

            await self._actions.join_conference(conference_id, event.leg_id, role="participant")
            if self._assistant_id:
                await self._actions.start_assistant(agent_leg_id, self._assistant_id)
            else:
                LOGGER.info("AI assistant not configured; skipping")
            await self._actions.gather(agent_leg_id, GatherPurpose.LISTEN_WHISPER.value, LISTEN_WHISPER_GATHER)

            session.go_live(event.leg_id, conference_id)
            LOGGER.info(
                "conference.live conference=%s agent_leg=%s customer_leg=%s",
                conference_id,
                agent_leg_id,
                event.leg_id,
            )

    async def _on_whisper_digits(self, event: DigitsGathered) -> None:
        leg_id = event.leg_id
        session = self._store.get(leg_id)
        if session is None or session.stage is not CallStage.LIVE:
            LOGGER.info("listen-whisper digits on leg=%s without a live session; not re-arming", leg_id)
            return

        LOGGER.info("whisper.dtmf leg=%s digits=%s", leg_id, event.digits)
        if event.digits == self._script.whisper_trigger:
            await self._actions.speak(leg_id, self._script.whisper_text)
        await self._actions.gather(leg_id, GatherPurpose.LISTEN_WHISPER.value, LISTEN_WHISPER_GATHER)

    async def _on_hangup(self, event: LegHungUp) -> None:
        session = (
            self._store.get(event.leg_id)
            or self._store.find_by_customer_leg(event.leg_id)
            or self._store.find_by_pending_leg(event.leg_id)
        )
        if session is None and self._store.is_locked(event.leg_id):
            # Inbound handling for this leg is still in flight.
            async with self._store.lock(event.leg_id):
                session = self._store.get(event.leg_id)
                self._store.discard(event.leg_id)
        if session is None:
            LOGGER.debug("call.hangup for untracked leg=%s", event.leg_id)
            self._store.discard(event.leg_id)
            return

        async with self._store.lock(session.agent_leg_id):
            self._store.discard(session.agent_leg_id)
        LOGGER.info("cleanup.call_ended hung_up_leg=%s session=%s", event.leg_id, session.summary())

    def _log_ignored(self, event: IgnoredEvent) -> None:
        if event.event_type.startswith("conference.participant."):
            LOGGER.info("conference.participant.event type=%s leg=%s %s", event.event_type, event.leg_id, event.details)
        elif event.event_type.startswith("call.speak."):
            LOGGER.info("speak.event type=%s leg=%s %s", event.event_type, event.leg_id, event.details)
        elif event.event_type.startswith("call.gather."):
            LOGGER.info("gather.event type=%s leg=%s %s", event.event_type, event.leg_id, event.details)
        elif event.event_type == "call.conversation_insights.generated":
            LOGGER.info("assistant.insights leg=%s %s", event.leg_id, event.details)
        else:
            LOGGER.debug("event.ignored type=%s leg=%s %s", event.event_type, event.leg_id, event.details)
