"""Consensus session state machine.

A session moves through ``initializing → round_in_progress →
consensus_check → {round_in_progress | finalizing} → complete``, or
to ``aborted`` from any non-terminal state. Any other transition is a
programming error and raises RuntimeError.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from quorum.schemas.consensus import (
    AgentResponse,
    ConsensusRequest,
    ConversationRound,
    Participant,
    SessionStatus,
)

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.INITIALIZING: frozenset({
        SessionStatus.ROUND_IN_PROGRESS, SessionStatus.ABORTED,
    }),
    SessionStatus.ROUND_IN_PROGRESS: frozenset({
        SessionStatus.CONSENSUS_CHECK, SessionStatus.ABORTED,
    }),
    SessionStatus.CONSENSUS_CHECK: frozenset({
        SessionStatus.ROUND_IN_PROGRESS, SessionStatus.FINALIZING, SessionStatus.ABORTED,
    }),
    SessionStatus.FINALIZING: frozenset({
        SessionStatus.COMPLETE, SessionStatus.ABORTED,
    }),
    SessionStatus.COMPLETE: frozenset(),
    SessionStatus.ABORTED: frozenset(),
}


class ConsensusSession:
    """Mutable state of one consensus run.

    Rounds and refinement history are append-only. ``cancel()`` may be
    called from any task; the orchestrator stops issuing provider calls
    and aborts with the best answer gathered so far.
    """

    def __init__(self, request: ConsensusRequest, session_id: str | None = None) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.request = request
        self.committee: list[Participant] = []
        self.rounds: list[ConversationRound] = []
        self.refinement_history: list[str] = []
        self.refinement_areas: list[str] = []
        self.total_cost = 0.0
        self.started = time.monotonic()
        self._status = SessionStatus.INITIALIZING
        self._cancelled = asyncio.Event()

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in (SessionStatus.COMPLETE, SessionStatus.ABORTED)

    def transition(self, new_status: SessionStatus) -> None:
        """Move to ``new_status``.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if new_status not in _TRANSITIONS[self._status]:
            raise RuntimeError(
                f"Invalid session transition {self._status} → {new_status}"
            )
        logger.debug("Session %s: %s → %s", self.session_id, self._status, new_status)
        self._status = new_status

    # ── Cancellation ──────────────────────────────────────────

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    # ── History ───────────────────────────────────────────────

    def record_round(self, round_record: ConversationRound) -> None:
        self.rounds.append(round_record)

    @property
    def all_responses(self) -> list[AgentResponse]:
        return [r for rnd in self.rounds for r in rnd.responses]

    @property
    def last_responses(self) -> list[AgentResponse]:
        """Responses of the most recent round that produced any."""
        for rnd in reversed(self.rounds):
            if rnd.responses:
                return rnd.responses
        return []

    def participant_name(self, participant_id: str) -> str:
        for p in self.committee:
            if p.participant_id == participant_id:
                return p.name
        return participant_id

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started
