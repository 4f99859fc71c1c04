"""Rule-based selector over the static routing rule table.

Maps a TaskProfile to a primary provider plus an ordered fallback chain.
Rules are ordered by priority (highest first) with declaration order as
the tie-break; the first rule that survives filtering wins. A miss is a
normal outcome and returns None.
"""

from __future__ import annotations

import logging

from quorum.schemas.providers import BenchmarkScores, ProviderConfig
from quorum.schemas.routing import (
    RouteCandidate,
    RouteConstraints,
    RoutingRule,
    RuleMatch,
    RuleThresholds,
)
from quorum.schemas.task import TaskProfile

logger = logging.getLogger(__name__)

# Capability reported when neither the rule nor the profile names one
_DEFAULT_CAPABILITY = "general"


def merge_thresholds(
    thresholds: RuleThresholds, constraints: RouteConstraints,
) -> RuleThresholds:
    """Tighten a rule's thresholds with the caller's ceilings and floor."""

    def _tighter(a: float | None, b: float | None) -> float | None:
        if a is None:
            return b
        if b is None:
            return a
        return min(a, b)

    return RuleThresholds(
        min_quality=max(thresholds.min_quality, constraints.min_quality),
        max_cost=_tighter(thresholds.max_cost, constraints.max_cost),
        max_latency_ms=_tighter(thresholds.max_latency_ms, constraints.max_latency_ms),
    )


def violates(benchmark: BenchmarkScores, thresholds: RuleThresholds) -> bool:
    """Whether a benchmark record breaks any hard threshold."""
    if benchmark.quality < thresholds.min_quality:
        return True
    if thresholds.max_cost is not None and benchmark.cost > thresholds.max_cost:
        return True
    return (
        thresholds.max_latency_ms is not None
        and benchmark.latency_ms > thresholds.max_latency_ms
    )


def pick_capability(rule: RoutingRule, profile: TaskProfile) -> str:
    """Choose the capability the rule's primary serves for this profile.

    Highest-weighted capability among those the profile requires; when
    none overlap, the rule's highest-weighted capability overall.
    """
    weights = rule.capability_weights
    if weights:
        relevant = {k: v for k, v in weights.items() if k in profile.required_capabilities}
        pool = relevant or weights
        # max() keeps the first key on ties, i.e. declaration order
        return max(pool, key=lambda k: pool[k])
    if profile.required_capabilities:
        return sorted(profile.required_capabilities)[0]
    return _DEFAULT_CAPABILITY


class RuleSelector:
    """Select a provider chain from the static rule table.

    Deterministic for identical inputs and an identical table.
    """

    def __init__(
        self,
        rules: list[RoutingRule],
        providers: dict[str, ProviderConfig],
    ) -> None:
        # sorted() is stable, so equal priorities keep declaration order
        self._rules = sorted(rules, key=lambda r: -r.priority)
        self._providers = providers

    @property
    def rules(self) -> list[RoutingRule]:
        """Rules in evaluation order."""
        return list(self._rules)

    def applicable(self, profile: TaskProfile) -> list[RoutingRule]:
        """Rules whose domain-match set covers the profile's domain."""
        return [r for r in self._rules if r.matches(profile.domain)]

    def explain(
        self,
        profile: TaskProfile,
        constraints: RouteConstraints | None = None,
    ) -> list[tuple[RoutingRule, str]]:
        """Every domain-matching rule with the reason it won or was skipped."""
        constraints = constraints or RouteConstraints()
        report: list[tuple[RoutingRule, str]] = []
        winner_found = False
        for rule in self.applicable(profile):
            reason = self._rejection(rule, constraints)
            if reason is None:
                reason = "shadowed by higher priority rule" if winner_found else "selected"
                winner_found = True
            report.append((rule, reason))
        return report

    def select(
        self,
        profile: TaskProfile,
        constraints: RouteConstraints | None = None,
    ) -> RuleMatch | None:
        """Return the winning rule's primary and pruned fallback chain.

        Returns:
            A RuleMatch, or None when no rule survives filtering.
        """
        constraints = constraints or RouteConstraints()
        for rule in self.applicable(profile):
            if self._rejection(rule, constraints) is not None:
                continue

            thresholds = merge_thresholds(rule.thresholds, constraints)
            capability = pick_capability(rule, profile)
            primary = self._candidate(rule.primary, capability)

            fallbacks: list[RouteCandidate] = []
            seen = {rule.primary}
            for provider_id in rule.fallbacks:
                if provider_id in seen or provider_id in constraints.excluded_providers:
                    continue
                config = self._providers.get(provider_id)
                if config is None or violates(config.benchmark, thresholds):
                    continue
                seen.add(provider_id)
                fallbacks.append(self._candidate(provider_id, capability))

            logger.debug(
                "Rule '%s' matched %s: %s + %d fallbacks",
                rule.name, profile.domain, rule.primary, len(fallbacks),
            )
            return RuleMatch(rule_name=rule.name, primary=primary, fallbacks=tuple(fallbacks))

        logger.debug("No rule matched domain %s", profile.domain)
        return None

    def _rejection(self, rule: RoutingRule, constraints: RouteConstraints) -> str | None:
        """Why a domain-matching rule cannot be used, or None if it can."""
        if rule.primary in constraints.excluded_providers:
            return "primary excluded"
        config = self._providers.get(rule.primary)
        if config is None:
            return "primary not registered"
        if violates(config.benchmark, merge_thresholds(rule.thresholds, constraints)):
            return "primary violates thresholds"
        return None

    def _candidate(self, provider_id: str, capability: str) -> RouteCandidate:
        return RouteCandidate(
            provider=provider_id,
            capability=capability,
            benchmark=self._providers[provider_id].benchmark,
        )
