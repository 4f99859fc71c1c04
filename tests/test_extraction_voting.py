"""Tests for quorum.consensus extraction and voting helpers."""

from __future__ import annotations

import pytest

from quorum.consensus.extraction import (
    extract_concerns,
    extract_confidence,
    extract_reasoning,
    extract_suggestions,
)
from quorum.consensus.voting import (
    LOW_SCORING_AREA,
    average_vote,
    best_response,
    consensus_score,
    parse_vote,
    quality_score,
    refinement_areas,
)
from quorum.schemas.consensus import AgentResponse

_RESPONSE = """\
Use a blue/green deployment behind the existing load balancer.

Reasoning: It keeps the old stack warm so rollback is a single switch.

Suggestions:
- Automate the traffic switch with a health-gated script
- Keep both stacks running for at least one day

Concerns:
- Database migrations must stay backward compatible
- Doubling the fleet raises the monthly bill

Confidence: 85%
"""


def _make_response(
    pid: str = "p1",
    confidence: float = 80,
    votes: dict[str, int] | None = None,
    concerns: list[str] | None = None,
) -> AgentResponse:
    return AgentResponse(
        participant_id=pid,
        provider="test",
        round=1,
        content=f"answer from {pid}",
        confidence=confidence,
        votes=votes or {},
        concerns=concerns or [],
    )


# ── Extraction ──────────────────────────────────────────────────


class TestConfidence:
    def test_explicit_value(self):
        assert extract_confidence(_RESPONSE) == 85.0

    def test_explicit_variants(self):
        assert extract_confidence("confidence level = 60") == 60.0
        assert extract_confidence("CONFIDENCE - 40%") == 40.0

    def test_explicit_value_clamped(self):
        assert extract_confidence("Confidence: 250%") == 100.0

    def test_heuristic_default(self):
        assert extract_confidence("Here is a plan.") == 70.0

    def test_heuristic_certainty(self):
        assert extract_confidence("This will definitely and clearly work.") == 90.0

    def test_heuristic_floor(self):
        text = "Maybe this could work, perhaps, or it might possibly fail."
        assert extract_confidence(text) == 50.0

    def test_heuristic_ceiling(self):
        text = "Definitely. Certainly. Clearly. Obviously."
        assert extract_confidence(text) == 95.0


class TestSections:
    def test_reasoning_section(self):
        assert extract_reasoning(_RESPONSE) == (
            "It keeps the old stack warm so rollback is a single switch."
        )

    def test_reasoning_falls_back_to_first_long_paragraph(self):
        text = "Short.\n\nThis paragraph is comfortably longer than fifty characters in total."
        assert extract_reasoning(text).startswith("This paragraph")

    def test_reasoning_empty_when_nothing_substantial(self):
        assert extract_reasoning("ok\n\nfine") == ""

    def test_suggestions(self):
        assert extract_suggestions(_RESPONSE) == [
            "Automate the traffic switch with a health-gated script",
            "Keep both stacks running for at least one day",
        ]

    def test_concerns(self):
        assert extract_concerns(_RESPONSE) == [
            "Database migrations must stay backward compatible",
            "Doubling the fleet raises the monthly bill",
        ]

    def test_short_items_dropped(self):
        assert extract_concerns("Concerns:\n- cost\n- none") == []

    def test_at_most_five_items(self):
        body = "\n".join(f"- Risk number {i} needs attention" for i in range(8))
        assert len(extract_concerns(f"Risks:\n{body}")) == 5

    def test_numbered_items(self):
        text = "Recommendations:\n1. Add a canary stage first\n2) Alert on error budget burn"
        assert extract_suggestions(text) == [
            "Add a canary stage first",
            "Alert on error budget burn",
        ]

    def test_missing_sections(self):
        assert extract_suggestions("Just an answer.") == []
        assert extract_concerns("Just an answer.") == []


# ── Voting ──────────────────────────────────────────────────────


class TestParseVote:
    @pytest.mark.parametrize(("reply", "expected"), [
        ("8", 8),
        ("I would give this a 9/10", 9),
        ("0", 1),
        ("42", 10),
        ("no idea", 5),
        ("", 5),
    ])
    def test_parse(self, reply, expected):
        assert parse_vote(reply) == expected


class TestConsensusScore:
    def test_unvoted_counts_as_seven(self):
        responses = [_make_response(confidence=90)]
        assert average_vote(responses[0]) == 7.0
        assert consensus_score(responses) == pytest.approx((0.9 + 0.7) / 2)

    def test_high_agreement_reaches_threshold(self):
        responses = [
            _make_response("a", 90, {"b": 9, "c": 8}),
            _make_response("b", 85, {"a": 8, "c": 9}),
            _make_response("c", 80, {"a": 8, "b": 8}),
        ]
        # (0.85 + 0.8333) / 2
        assert consensus_score(responses) == pytest.approx(0.8417, abs=1e-3)
        assert consensus_score(responses) >= 0.8

    def test_empty_round(self):
        assert consensus_score([]) == 0.0


class TestRefinementAreas:
    def test_low_scoring_area(self):
        responses = [_make_response("a", votes={"b": 3}), _make_response("b", votes={"a": 9})]
        assert refinement_areas(responses) == [LOW_SCORING_AREA]

    def test_unvoted_responses_are_not_low(self):
        assert refinement_areas([_make_response("a")]) == []

    def test_common_concerns_case_insensitive(self):
        responses = [
            _make_response("a", concerns=["Cost overrun", "Vendor lock-in", "Latency"]),
            _make_response("b", concerns=["cost overrun", "vendor lock-in"]),
            _make_response("c", concerns=["latency", "Team size"]),
        ]
        assert refinement_areas(responses) == [
            "Address common concerns: cost overrun, vendor lock-in, latency",
        ]

    def test_common_concerns_capped_at_three(self):
        shared = ["alpha risk", "beta risk", "gamma risk", "delta risk"]
        responses = [_make_response("a", concerns=shared), _make_response("b", concerns=shared)]
        area = refinement_areas(responses)[0]
        assert "delta risk" not in area


class TestQuality:
    def test_formula(self):
        responses = [_make_response(confidence=80), _make_response(confidence=60)]
        # 70·0.4 + 100·0.4 + min(20, 5) + min(20, 12)
        assert quality_score(responses, True, 1, 3) == pytest.approx(28 + 40 + 5 + 12)

    def test_without_consensus(self):
        responses = [_make_response(confidence=50)]
        assert quality_score(responses, False, 0, 1) == pytest.approx(20 + 24 + 0 + 4)

    def test_capped_at_hundred(self):
        responses = [_make_response(confidence=100)]
        assert quality_score(responses, True, 10, 10) == 100.0

    def test_no_responses(self):
        assert quality_score([], False, 0, 3) == 0.0


class TestBestResponse:
    def test_highest_confidence(self):
        responses = [_make_response("a", 70), _make_response("b", 90)]
        assert best_response(responses).participant_id == "b"

    def test_earliest_wins_ties(self):
        responses = [_make_response("a", 80), _make_response("b", 80)]
        assert best_response(responses).participant_id == "a"

    def test_empty(self):
        assert best_response([]) is None
