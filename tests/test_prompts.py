"""Tests for quorum.prompts: Jinja2 prompt templates."""

import pytest

from quorum.prompts import render_prompt
from quorum.schemas.consensus import CommunicationStyle, Participant, Personality


def _make_participant(**overrides) -> Participant:
    defaults = {
        "participant_id": "the-critic",
        "name": "The Critic",
        "role": "Finds flaws in every proposal",
        "personality": Personality(
            traits=["skeptical", "precise"],
            communication_style=CommunicationStyle.CRITICAL,
        ),
        "specializations": ["security"],
    }
    defaults.update(overrides)
    return Participant(**defaults)


class TestParticipantPrompt:
    def test_first_round(self):
        prompt = render_prompt(
            "participant",
            participant=_make_participant(),
            task="Choose a cache eviction policy",
            context="",
            expected_output="",
            round=1,
            previous_responses=[],
            refinement_areas=[],
        )
        assert prompt.startswith("You are The Critic")
        assert "Choose a cache eviction policy" in prompt
        assert "skeptical, precise" in prompt
        assert "**Communication style:** critical" in prompt
        assert "**Specializations:** security" in prompt
        assert "Stress-test every assumption" in prompt
        assert "Confidence: NN%" in prompt
        assert "Discussion" not in prompt
        assert "## Context" not in prompt
        assert "## Focus For This Round" not in prompt

    def test_later_round_includes_discussion(self):
        prompt = render_prompt(
            "participant",
            participant=_make_participant(),
            task="Choose a cache eviction policy",
            context="Read-heavy workload",
            expected_output="One paragraph",
            round=2,
            previous_responses=[
                {"name": "The Architect", "confidence": 82.4, "content": "Use LRU."},
            ],
            refinement_areas=["Address common concerns: memory overhead"],
        )
        assert "## Round 1 Discussion" in prompt
        assert "### The Architect (82% confidence)" in prompt
        assert "Use LRU." in prompt
        assert "- Address common concerns: memory overhead" in prompt
        assert "Read-heavy workload" in prompt
        assert "One paragraph" in prompt

    @pytest.mark.parametrize(
        ("style", "phrase"),
        [
            (CommunicationStyle.ANALYTICAL, "systematically"),
            (CommunicationStyle.CREATIVE, "unconventional"),
            (CommunicationStyle.PRAGMATIC, "actually be shipped"),
            (CommunicationStyle.COLLABORATIVE, "common ground"),
        ],
    )
    def test_style_guidance(self, style, phrase):
        participant = _make_participant(personality=Personality(communication_style=style))
        prompt = render_prompt(
            "participant", participant=participant, task="t", round=1,
        )
        assert phrase in prompt
        assert "none listed" in prompt


class TestOtherPrompts:
    def test_vote(self):
        prompt = render_prompt(
            "vote",
            voter=_make_participant(),
            author="The Architect",
            task="Choose a cache eviction policy",
            content="Use LRU.",
        )
        assert prompt.startswith("You are The Critic.")
        assert "written by The Architect" in prompt
        assert prompt.rstrip().endswith("Reply with a single integer from 1 to 10 and nothing else.")

    def test_synthesis(self):
        prompt = render_prompt(
            "synthesis",
            coordinator=_make_participant(name="The Coordinator"),
            task="Choose a cache eviction policy",
            expected_output="",
            total_rounds=1,
            responses=[{"name": "The Architect", "confidence": 90, "content": "Use LRU."}],
            refinement_history=[],
        )
        assert "over 1 round." in prompt
        assert "## Final Round Positions" in prompt
        assert "### The Architect (90% confidence)" in prompt
        assert "Refinement History" not in prompt

    def test_synthesis_with_history(self):
        prompt = render_prompt(
            "synthesis",
            coordinator=_make_participant(name="The Coordinator"),
            task="t",
            total_rounds=3,
            responses=[],
            refinement_history=["Round 1: Address concerns about low-scoring approaches"],
        )
        assert "over 3 rounds." in prompt
        assert "- Round 1: Address concerns about low-scoring approaches" in prompt

    def test_direct(self):
        prompt = render_prompt(
            "direct", task="Summarize the report", context="Q3 numbers", expected_output="",
        )
        assert prompt.startswith("Answer the following task directly and completely.")
        assert "Q3 numbers" in prompt
        assert "Expected Output" not in prompt

    def test_missing_template(self):
        with pytest.raises(FileNotFoundError, match="Prompt template not found"):
            render_prompt("nonexistent")
