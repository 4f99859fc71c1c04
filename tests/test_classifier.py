"""Tests for quorum.classifier: keyword-driven task profiles."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from quorum.classifier import TaskClassifier
from quorum.schemas.task import ClassificationHints, Complexity, TaskDomain


def _classify(text: str, **hints):
    return TaskClassifier().classify(text, ClassificationHints(**hints) if hints else None)


# ── Domain detection ──────────────────────────────────────────────


class TestDomain:
    def test_software_keywords(self):
        profile = _classify("Fix the bug in my Python function")
        assert profile.domain == TaskDomain.SOFTWARE
        assert "bug" in profile.matched_keywords
        assert "python" in profile.matched_keywords

    def test_content_keywords(self):
        assert _classify("Write a blog post for our newsletter").domain == TaskDomain.CONTENT

    def test_analysis_keywords(self):
        assert _classify("Analyze quarterly sales metrics").domain == TaskDomain.ANALYSIS

    def test_creative_keywords(self):
        assert _classify("Write a poem about autumn").domain == TaskDomain.CREATIVE

    def test_research_keywords(self):
        profile = _classify("Find out what the literature says about sleep")
        assert profile.domain == TaskDomain.RESEARCH

    def test_conversation_keywords(self):
        assert _classify("hello, how are you today?").domain == TaskDomain.CONVERSATION

    def test_first_signature_wins(self):
        # "story" is creative, but software is checked first
        assert _classify("Write a story about a program").domain == TaskDomain.SOFTWARE

    def test_cjk_keywords(self):
        assert _classify("请帮我写代码").domain == TaskDomain.SOFTWARE

    def test_word_boundary(self):
        # "decode" must not count as a "code" hit
        profile = _classify("Please decode the message")
        assert profile.domain == TaskDomain.GENERAL
        assert profile.matched_keywords == ()

    def test_unmatched_text_is_general(self):
        profile = _classify("zzz qqq")
        assert profile.domain == TaskDomain.GENERAL
        assert profile.complexity == Complexity.MEDIUM

    def test_hint_overrides_scan(self):
        profile = _classify("Fix the bug", domain=TaskDomain.RESEARCH)
        assert profile.domain == TaskDomain.RESEARCH
        assert "long_context" in profile.required_capabilities


# ── Complexity and targets ────────────────────────────────────────


class TestComplexity:
    def test_high_keyword(self):
        profile = _classify("Plan a scalable distributed architecture")
        assert profile.complexity == Complexity.HIGH
        assert profile.target_cost == 0.25
        assert profile.target_quality == 0.9
        assert profile.target_latency_ms == 30_000

    def test_low_keyword(self):
        profile = _classify("Give me a quick summary")
        assert profile.complexity == Complexity.LOW
        assert profile.target_cost == 0.01
        assert profile.target_latency_ms == 3_000

    def test_medium_default_targets(self):
        profile = _classify("Fix the bug in my Python function")
        assert profile.complexity == Complexity.MEDIUM
        assert profile.target_cost == 0.05
        assert profile.target_quality == 0.75
        assert profile.target_latency_ms == 8_000

    def test_long_text_is_high(self):
        assert _classify("word " * 201).complexity == Complexity.HIGH

    def test_complexity_override(self):
        profile = _classify("Plan a scalable architecture", complexity=Complexity.LOW)
        assert profile.complexity == Complexity.LOW
        assert profile.target_cost == 0.01

    def test_explicit_targets_win(self):
        profile = _classify(
            "Fix the bug", target_cost=0.5, target_quality=0.99, target_latency_ms=100,
        )
        assert profile.target_cost == 0.5
        assert profile.target_quality == 0.99
        assert profile.target_latency_ms == 100


# ── Capabilities and stakes ───────────────────────────────────────


class TestCapabilities:
    def test_domain_base_capability(self):
        assert "code" in _classify("Refactor this script").required_capabilities

    def test_keyword_capabilities(self):
        caps = _classify("Translate this image caption to Spanish").required_capabilities
        assert "multilingual" in caps
        assert "vision" in caps

    def test_hint_capabilities_added(self):
        caps = _classify("hello", capabilities=["tools"]).required_capabilities
        assert caps >= {"chat", "tools"}

    def test_high_stakes_detected(self):
        assert _classify("Review the security of our production deploy").high_stakes

    def test_ordinary_task_not_high_stakes(self):
        assert not _classify("Write a poem about autumn").high_stakes

    def test_high_stakes_hint_wins(self):
        assert not _classify("Audit our compliance process", high_stakes=False).high_stakes


class TestNeverRaises:
    def test_empty_text(self):
        profile = TaskClassifier().classify("")
        assert profile.domain == TaskDomain.GENERAL
        assert profile.text == ""

    def test_whitespace_text(self):
        assert TaskClassifier().classify("   \n\t").domain == TaskDomain.GENERAL

    def test_profile_is_frozen(self):
        profile = TaskClassifier().classify("hello")
        with pytest.raises(ValidationError):
            profile.domain = TaskDomain.SOFTWARE
