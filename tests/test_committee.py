"""Tests for quorum.consensus.committee: committee selection."""

from __future__ import annotations

import logging

from quorum.consensus.committee import find_coordinator, select_committee, temperature_for
from quorum.schemas.consensus import (
    CommunicationStyle,
    ConsensusRequest,
    Participant,
    Personality,
)
from quorum.schemas.task import TaskDomain, TaskProfile

# ── Factories ──────────────────────────────────────────────────────


def _make_participant(pid: str, *, domains=(), tags=(), coordinator=False) -> Participant:
    return Participant(
        participant_id=pid,
        name=pid.title(),
        role=f"{pid} role",
        domains=list(domains),
        specializations=list(tags),
        coordinator=coordinator,
    )


def _make_pool() -> dict[str, Participant]:
    members = [
        _make_participant("architect", domains=[TaskDomain.SOFTWARE]),
        _make_participant("critic", tags=["security"]),
        _make_participant("writer", domains=[TaskDomain.CONTENT]),
        _make_participant("artist", domains=[TaskDomain.CREATIVE]),
        _make_participant("analyst", domains=[TaskDomain.ANALYSIS]),
        _make_participant("chair", coordinator=True),
    ]
    return {p.participant_id: p for p in members}


def _profile(domain=TaskDomain.GENERAL, text: str = "") -> TaskProfile:
    return TaskProfile(domain=domain, text=text)


def _ids(committee) -> list[str]:
    return [p.participant_id for p in committee]


class TestSelectCommittee:
    def test_overlap_comes_before_filler(self):
        committee = select_committee(
            _make_pool(), ConsensusRequest(task="t"),
            _profile(TaskDomain.SOFTWARE, "harden security of the api"),
        )
        assert _ids(committee)[:2] == ["architect", "critic"]
        assert "chair" in _ids(committee)
        assert len(committee) >= 3

    def test_required_first(self):
        request = ConsensusRequest(task="t", required_participants=["analyst"])
        committee = select_committee(_make_pool(), request, _profile(TaskDomain.SOFTWARE))
        assert _ids(committee)[0] == "analyst"

    def test_optional_after_overlap(self):
        request = ConsensusRequest(task="t", optional_participants=["artist"])
        committee = select_committee(_make_pool(), request, _profile(TaskDomain.SOFTWARE))
        assert _ids(committee)[:2] == ["architect", "artist"]

    def test_fills_to_min_size_in_pool_order(self):
        committee = select_committee(
            _make_pool(), ConsensusRequest(task="t"), _profile(), min_size=3,
        )
        assert _ids(committee) == ["architect", "critic", "writer", "chair"]

    def test_capped_at_max_size(self):
        request = ConsensusRequest(
            task="t", required_participants=["architect", "critic", "writer", "artist"],
        )
        committee = select_committee(_make_pool(), request, _profile(), max_size=3)
        assert len(committee) == 3
        assert "chair" in _ids(committee)

    def test_dropped_required_participants_are_logged(self, caplog):
        request = ConsensusRequest(
            task="t", required_participants=["architect", "critic", "writer", "artist"],
        )
        with caplog.at_level(logging.WARNING, logger="quorum.consensus.committee"):
            committee = select_committee(_make_pool(), request, _profile(), max_size=3)

        assert _ids(committee) == ["architect", "critic", "chair"]
        messages = [r.getMessage() for r in caplog.records]
        assert any("dropping required participants: artist" in m for m in messages)
        assert any("'writer' gives up its seat" in m for m in messages)

    def test_no_warning_within_cap(self, caplog):
        request = ConsensusRequest(task="t", required_participants=["writer"])
        with caplog.at_level(logging.WARNING, logger="quorum.consensus.committee"):
            select_committee(_make_pool(), request, _profile(), max_size=5)
        assert caplog.records == []

    def test_coordinator_replaces_last_non_required(self):
        request = ConsensusRequest(task="t", required_participants=["writer"])
        committee = select_committee(
            _make_pool(), request, _profile(TaskDomain.SOFTWARE), min_size=2, max_size=2,
        )
        assert _ids(committee) == ["writer", "chair"]

    def test_unknown_participants_ignored(self):
        request = ConsensusRequest(
            task="t", required_participants=["ghost"], optional_participants=["phantom"],
        )
        committee = select_committee(_make_pool(), request, _profile())
        assert "ghost" not in _ids(committee)
        assert "phantom" not in _ids(committee)

    def test_no_duplicates(self):
        request = ConsensusRequest(
            task="t",
            required_participants=["architect"],
            optional_participants=["architect"],
        )
        committee = select_committee(_make_pool(), request, _profile(TaskDomain.SOFTWARE))
        assert _ids(committee).count("architect") == 1

    def test_pool_without_coordinator(self):
        pool = {pid: p for pid, p in _make_pool().items() if pid != "chair"}
        committee = select_committee(pool, ConsensusRequest(task="t"), _profile())
        assert len(committee) == 3


class TestHelpers:
    def test_find_coordinator(self):
        assert find_coordinator(_make_pool()).participant_id == "chair"
        assert find_coordinator({}) is None

    def test_temperature_by_style(self):
        assert temperature_for(Personality(communication_style=CommunicationStyle.CRITICAL)) == 0.2
        assert temperature_for(Personality(communication_style=CommunicationStyle.CREATIVE)) == 0.8
        assert temperature_for(Personality()) == 0.3
