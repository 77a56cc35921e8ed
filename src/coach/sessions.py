from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from coach.errors import InvalidStageTransition


class CallStage(str, Enum):
    """Stages of a coached call, in the only order they may occur."""

    COLLECTING = "collecting"  # agent is keying in the destination
    DIALLING = "dialling"  # outbound leg created, waiting for it to answer
    LIVE = "live"  # conference up, listening for whisper digits

    def __str__(self) -> str:
        return self.value


_STAGE_ORDER = {stage: index for index, stage in enumerate(CallStage)}


@dataclass
class CallSession:
    agent_leg_id: str
    stage: CallStage = CallStage.COLLECTING
    pending_outbound_leg_id: str | None = None
    customer_leg_id: str | None = None
    conference_id: str | None = None
    created_at: float = field(default_factory=time.monotonic)

    def _advance(self, stage: CallStage) -> None:
        if _STAGE_ORDER[stage] <= _STAGE_ORDER[self.stage]:
            raise InvalidStageTransition(
                f"Session {self.agent_leg_id} cannot move from {self.stage} to {stage}"
            )
        self.stage = stage

    def begin_dialling(self, outbound_leg_id: str) -> None:
        self._advance(CallStage.DIALLING)
        self.pending_outbound_leg_id = outbound_leg_id

    def go_live(self, customer_leg_id: str, conference_id: str) -> None:
        self._advance(CallStage.LIVE)
        self.customer_leg_id = customer_leg_id
        self.conference_id = conference_id

    def summary(self) -> dict[str, object]:
        return {
            "agent_leg_id": self.agent_leg_id,
            "stage": self.stage.value,
            "pending_outbound_leg_id": self.pending_outbound_leg_id,
            "customer_leg_id": self.customer_leg_id,
            "conference_id": self.conference_id,
            "age_seconds": round(time.monotonic() - self.created_at, 1),
        }


class SessionStore:
    """In-memory call sessions keyed by agent leg id.

    Note: This is a single-process store. Lookups and mutations are plain
    synchronous dict operations; handlers that await between reading and
    writing a session must hold ``lock(agent_leg_id)`` for that span.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, agent_leg_id: object) -> bool:
        return agent_leg_id in self._sessions

    def lock(self, agent_leg_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_leg_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[agent_leg_id] = lock
        return lock

    def is_locked(self, agent_leg_id: str) -> bool:
        lock = self._locks.get(agent_leg_id)
        return lock is not None and lock.locked()

    def get_or_create(self, agent_leg_id: str) -> CallSession:
        session = self._sessions.get(agent_leg_id)
        if session is None:
            session = CallSession(agent_leg_id=agent_leg_id)
            self._sessions[agent_leg_id] = session
        return session

    def get(self, agent_leg_id: str) -> CallSession | None:
        return self._sessions.get(agent_leg_id)

    def find(self, predicate: Callable[[CallSession], bool]) -> CallSession | None:
        for session in self._sessions.values():
            if predicate(session):
                return session
        return None

    def find_by_pending_leg(self, leg_id: str) -> CallSession | None:
        return self.find(lambda s: s.pending_outbound_leg_id is not None and s.pending_outbound_leg_id == leg_id)

    def find_by_customer_leg(self, leg_id: str) -> CallSession | None:
        return self.find(lambda s: s.customer_leg_id is not None and s.customer_leg_id == leg_id)

    def discard(self, agent_leg_id: str) -> CallSession | None:
        """Remove a session if present. Safe to call repeatedly."""

        self._locks.pop(agent_leg_id, None)
        return self._sessions.pop(agent_leg_id, None)
