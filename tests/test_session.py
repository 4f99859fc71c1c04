"""Tests for quorum.consensus.session: the session state machine."""

from __future__ import annotations

import asyncio

import pytest

from quorum.consensus.session import ConsensusSession
from quorum.schemas.consensus import (
    AgentResponse,
    ConsensusRequest,
    ConversationRound,
    Participant,
    SessionStatus,
)

S = SessionStatus


def _make_session() -> ConsensusSession:
    return ConsensusSession(ConsensusRequest(task="decide"), session_id="s-1")


def _response(pid: str, rnd: int) -> AgentResponse:
    return AgentResponse(participant_id=pid, provider="x", round=rnd, content="c", confidence=70)


class TestTransitions:
    def test_happy_path(self):
        session = _make_session()
        for status in (S.ROUND_IN_PROGRESS, S.CONSENSUS_CHECK, S.ROUND_IN_PROGRESS,
                       S.CONSENSUS_CHECK, S.FINALIZING, S.COMPLETE):
            session.transition(status)
        assert session.status == S.COMPLETE
        assert session.is_terminal

    @pytest.mark.parametrize("start_path", [
        [],
        [S.ROUND_IN_PROGRESS],
        [S.ROUND_IN_PROGRESS, S.CONSENSUS_CHECK],
        [S.ROUND_IN_PROGRESS, S.CONSENSUS_CHECK, S.FINALIZING],
    ])
    def test_abort_from_any_live_state(self, start_path):
        session = _make_session()
        for status in start_path:
            session.transition(status)
        session.transition(S.ABORTED)
        assert session.is_terminal

    def test_invalid_transition_raises(self):
        session = _make_session()
        with pytest.raises(RuntimeError, match="Invalid session transition"):
            session.transition(S.FINALIZING)

    def test_terminal_states_are_final(self):
        session = _make_session()
        session.transition(S.ABORTED)
        with pytest.raises(RuntimeError):
            session.transition(S.ROUND_IN_PROGRESS)


class TestHistory:
    def test_responses_and_last_round(self):
        session = _make_session()
        session.record_round(ConversationRound(round=1, responses=[_response("a", 1)]))
        session.record_round(ConversationRound(round=2, responses=[]))
        assert [r.participant_id for r in session.all_responses] == ["a"]
        # an empty round does not hide the previous answers
        assert session.last_responses[0].round == 1

    def test_participant_name(self):
        session = _make_session()
        session.committee = [Participant(participant_id="a", name="Alice", role="r")]
        assert session.participant_name("a") == "Alice"
        assert session.participant_name("zed") == "zed"

    def test_generated_session_id(self):
        assert ConsensusSession(ConsensusRequest(task="t")).session_id


class TestCancellation:
    async def test_cancel_wakes_waiters(self):
        session = _make_session()
        waiter = asyncio.create_task(session.wait_cancelled())
        await asyncio.sleep(0)
        assert not session.cancelled
        session.cancel()
        await asyncio.wait_for(waiter, timeout=1)
        assert session.cancelled
