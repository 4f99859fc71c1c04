"""Tests for quorum.routing.engine: the route resolver."""

from __future__ import annotations

import random
from unittest.mock import MagicMock

import pytest

from quorum.routing.engine import NO_POLICY_JUSTIFICATION, RouteResolver
from quorum.routing.policy import PolicyStore
from quorum.routing.rules import RuleSelector
from quorum.schemas.providers import BenchmarkScores, ProviderConfig
from quorum.schemas.routing import ResolverSettings, RouteConstraints, RoutingRule
from quorum.schemas.task import TaskDomain, TaskProfile

_SW = TaskDomain.SOFTWARE

# ── Factories ──────────────────────────────────────────────────────


def _make_provider(pid: str, quality: float, capabilities=("code",)) -> ProviderConfig:
    return ProviderConfig(
        provider_id=pid,
        model=f"test/{pid}",
        display_name=pid,
        capabilities=list(capabilities),
        benchmark=BenchmarkScores(quality=quality, success_rate=0.5),
    )


def _make_registry() -> dict[str, ProviderConfig]:
    return {
        "premium": _make_provider("premium", 0.95),
        "mid": _make_provider("mid", 0.8),
        "budget": _make_provider("budget", 0.6),
    }


def _make_rule(**overrides) -> RoutingRule:
    defaults = {
        "name": "sw",
        "domains": ("software",),
        "primary": "premium",
        "fallbacks": ("mid", "budget"),
        "capability_weights": {"code": 1.0},
    }
    defaults.update(overrides)
    return RoutingRule(**defaults)


def _make_resolver(
    rules=None,
    policy: PolicyStore | None = None,
    settings: ResolverSettings | None = None,
    rng=None,
    default_provider: str = "",
) -> RouteResolver:
    registry = _make_registry()
    return RouteResolver(
        RuleSelector([_make_rule()] if rules is None else rules, registry),
        policy or PolicyStore(),
        registry,
        default_provider=default_provider,
        settings=settings or ResolverSettings(exploration_rate=0.0),
        rng=rng or random.Random(0),
    )


def _profile(domain=_SW) -> TaskProfile:
    return TaskProfile(domain=domain, required_capabilities=frozenset({"code"}))


# ── Greedy selection ────────────────────────────────────────────


class TestGreedy:
    def test_benchmark_ranking_without_policy(self):
        decision = _make_resolver().resolve(_profile())
        assert decision.provider == "premium"
        assert decision.capability == "code"
        assert decision.rule_name == "sw"
        assert not decision.exploratory
        assert not decision.is_default
        # (0.5·0.95 + 0.3·0.5) · 0.5
        assert decision.score == pytest.approx(0.3125)
        assert decision.confidence == pytest.approx(0.3125)
        assert [a.provider for a in decision.alternatives] == ["mid", "budget"]

    def test_deterministic_at_zero_exploration(self):
        resolver = _make_resolver()
        decisions = {resolver.resolve(_profile()).provider for _ in range(50)}
        assert decisions == {"premium"}

    async def test_learned_policy_promotes_fallback(self):
        policy = PolicyStore()
        for _ in range(10):
            await policy.update("mid", _SW, 1.0, True)
        decision = _make_resolver(policy=policy).resolve(_profile())
        assert decision.provider == "mid"
        assert decision.alternatives[0].provider == "premium"

    def test_preference_bonus(self):
        settings = ResolverSettings(exploration_rate=0.0, preference_bonus=0.3)
        constraints = RouteConstraints(preferred_providers=("budget",))
        decision = _make_resolver(settings=settings).resolve(_profile(), constraints)
        assert decision.provider == "budget"

    def test_per_call_settings_override(self):
        resolver = _make_resolver()
        decision = resolver.resolve(
            _profile(),
            RouteConstraints(preferred_providers=("budget",)),
            ResolverSettings(exploration_rate=0.0, preference_bonus=0.3),
        )
        assert decision.provider == "budget"
        # the resolver's own settings are untouched
        again = resolver.resolve(_profile(), RouteConstraints(preferred_providers=("budget",)))
        assert again.provider == "premium"

    def test_max_alternatives(self):
        settings = ResolverSettings(exploration_rate=0.0, max_alternatives=1)
        decision = _make_resolver(settings=settings).resolve(_profile())
        assert len(decision.alternatives) == 1

    async def test_confidence_clamped(self):
        settings = ResolverSettings(exploration_rate=0.0, preference_bonus=1.0)
        policy = PolicyStore()
        for _ in range(20):
            await policy.update("premium", _SW, 1.0, True)
        decision = _make_resolver(policy=policy, settings=settings).resolve(
            _profile(), RouteConstraints(preferred_providers=("premium",)),
        )
        assert decision.score > 1.0
        assert decision.confidence == 1.0

    def test_justification_mentions_rule(self):
        decision = _make_resolver().resolve(_profile())
        assert decision.justification.startswith("optimal selection of premium via rule 'sw'")


# ── Exploration ─────────────────────────────────────────────────


class TestExploration:
    def _forced_rng(self) -> MagicMock:
        rng = MagicMock()
        rng.random.return_value = 0.0
        rng.choice.side_effect = lambda seq: seq[-1]
        return rng

    def test_explores_within_top_k(self):
        settings = ResolverSettings(exploration_rate=0.5, top_k=2)
        decision = _make_resolver(settings=settings, rng=self._forced_rng()).resolve(_profile())
        assert decision.exploratory
        assert decision.provider == "mid"
        assert [a.provider for a in decision.alternatives] == ["premium", "budget"]
        assert decision.justification.startswith("exploratory")

    def test_single_candidate_never_explores(self):
        rules = [_make_rule(fallbacks=())]
        settings = ResolverSettings(exploration_rate=1.0)
        decision = _make_resolver(rules, settings=settings, rng=self._forced_rng()).resolve(
            _profile(),
        )
        assert not decision.exploratory
        assert decision.provider == "premium"

    def test_seeded_runs_are_reproducible(self):
        settings = ResolverSettings(exploration_rate=0.5)
        a = _make_resolver(settings=settings, rng=random.Random(42))
        b = _make_resolver(settings=settings, rng=random.Random(42))
        picks_a = [a.resolve(_profile()).provider for _ in range(30)]
        picks_b = [b.resolve(_profile()).provider for _ in range(30)]
        assert picks_a == picks_b
        assert set(picks_a) <= {"premium", "mid", "budget"}


# ── Policy-only and default paths ──────────────────────────────


class TestFallbackPaths:
    def test_default_decision_when_nothing_matches(self):
        decision = _make_resolver(rules=[], default_provider="budget").resolve(_profile())
        assert decision.is_default
        assert decision.provider == "budget"
        assert decision.confidence == 0.0
        assert decision.justification == NO_POLICY_JUSTIFICATION
        assert decision.alternatives == []

    def test_excluded_default_gives_way(self):
        constraints = RouteConstraints(excluded_providers=frozenset({"budget"}))
        decision = _make_resolver(rules=[], default_provider="budget").resolve(
            _profile(), constraints,
        )
        assert decision.is_default
        assert decision.provider == "mid"
        assert decision.confidence == 0.0

    def test_every_provider_excluded(self):
        constraints = RouteConstraints(
            excluded_providers=frozenset({"budget", "mid", "premium"}),
        )
        decision = _make_resolver(default_provider="budget").resolve(_profile(), constraints)
        assert decision.is_default
        assert decision.provider == ""
        assert decision.chain == [""]

    def test_default_provider_falls_back_to_first_registered(self):
        resolver = _make_resolver(rules=[])
        assert resolver.default_provider == "budget"

    async def test_policy_only_candidates(self):
        policy = PolicyStore()
        await policy.update("mid", TaskDomain.CONTENT, 1.0, True)
        await policy.update("budget", TaskDomain.CONTENT, -1.0, False)
        decision = _make_resolver(policy=policy).resolve(_profile(TaskDomain.CONTENT))
        assert not decision.is_default
        assert decision.rule_name is None
        assert decision.provider == "mid"
        assert "learned policy" in decision.justification
        assert decision.capability == "code"

    async def test_policy_only_respects_exclusions(self):
        policy = PolicyStore()
        await policy.update("mid", TaskDomain.CONTENT, 1.0, True)
        constraints = RouteConstraints(excluded_providers=frozenset({"mid"}))
        decision = _make_resolver(policy=policy).resolve(
            _profile(TaskDomain.CONTENT), constraints,
        )
        assert decision.is_default

    async def test_policy_only_skips_unregistered_providers(self):
        policy = PolicyStore()
        await policy.update("retired", TaskDomain.CONTENT, 1.0, True)
        decision = _make_resolver(policy=policy).resolve(_profile(TaskDomain.CONTENT))
        assert decision.is_default

    def test_excluded_everything_yields_default(self):
        constraints = RouteConstraints(excluded_providers=frozenset({"premium"}))
        decision = _make_resolver().resolve(_profile(), constraints)
        assert decision.is_default
