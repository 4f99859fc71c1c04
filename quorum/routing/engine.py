"""Route resolver: combines rule matches with learned policy.

Rule matches seed the candidate set; learned policy scores rank it;
an epsilon-greedy draw over the top-k keeps exploring. Resolution
never raises: an empty candidate set yields the configured default
provider with confidence 0.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from quorum.routing.policy import PolicyStore
from quorum.routing.rules import RuleSelector
from quorum.schemas.providers import ProviderConfig
from quorum.schemas.routing import (
    ResolverSettings,
    RouteAlternative,
    RouteConstraints,
    RoutingDecision,
    RuleMatch,
)
from quorum.schemas.task import TaskProfile

logger = logging.getLogger(__name__)

# Blend weights for the combined candidate score
_POLICY_WEIGHT = 0.5
_SUCCESS_WEIGHT = 0.3

NO_POLICY_JUSTIFICATION = "no learned policy available"


@dataclass
class _Scored:
    """A candidate with the inputs and result of the scoring formula."""

    provider: str
    capability: str
    policy_score: float
    success_rate: float
    confidence: float
    preferred: bool
    score: float = 0.0


class RouteResolver:
    """Resolve a TaskProfile to a RoutingDecision.

    The RNG is injected so exploration is reproducible under a seed.
    """

    def __init__(
        self,
        selector: RuleSelector,
        policy: PolicyStore,
        providers: dict[str, ProviderConfig],
        *,
        default_provider: str = "",
        settings: ResolverSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._selector = selector
        self._policy = policy
        self._providers = providers
        self._default_provider = default_provider or next(iter(sorted(providers)), "")
        self._settings = settings or ResolverSettings()
        self._rng = rng or random.Random()

    @property
    def settings(self) -> ResolverSettings:
        return self._settings

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def resolve(
        self,
        profile: TaskProfile,
        constraints: RouteConstraints | None = None,
        settings: ResolverSettings | None = None,
    ) -> RoutingDecision:
        """Pick a provider for ``profile``.

        Args:
            profile: The classified task.
            constraints: Caller exclusions, preferences and ceilings.
            settings: Per-call override of the resolver parameters.

        Returns:
            A RoutingDecision. ``is_default`` is set when no candidate
            survived and the configured default provider was returned.
        """
        constraints = constraints or RouteConstraints()
        settings = settings or self._settings

        match = self._selector.select(profile, constraints)
        candidates = self._gather(profile, constraints, match)
        if not candidates:
            return self._default_decision(profile, constraints)

        for c in candidates:
            c.score = self._combine(c, settings)
        # sorted() is stable: equal scores keep rule-chain order
        ranked = sorted(candidates, key=lambda c: -c.score)

        exploratory = False
        selected = ranked[0]
        if len(ranked) > 1 and self._rng.random() < settings.exploration_rate:
            exploratory = True
            selected = self._rng.choice(ranked[: settings.top_k])

        alternatives = [
            RouteAlternative(provider=c.provider, capability=c.capability, score=c.score)
            for c in ranked
            if c is not selected
        ][: settings.max_alternatives]

        decision = RoutingDecision(
            provider=selected.provider,
            capability=selected.capability,
            domain=profile.domain,
            confidence=max(0.0, min(1.0, selected.score)),
            justification=self._justify(selected, exploratory, match.rule_name if match else None),
            score=selected.score,
            alternatives=alternatives,
            exploratory=exploratory,
            rule_name=match.rule_name if match else None,
        )
        logger.info(
            "Routing %s → %s (%s, score: %.3f)",
            profile.domain, decision.provider,
            "exploratory" if exploratory else "optimal", decision.score,
        )
        return decision

    # ── Candidate gathering ───────────────────────────────────

    def _gather(
        self,
        profile: TaskProfile,
        constraints: RouteConstraints,
        match: RuleMatch | None,
    ) -> list[_Scored]:
        preferred = set(constraints.preferred_providers)
        if match is not None:
            scored = []
            for cand in match.chain:
                state = self._policy.get(cand.provider, profile.domain)
                if state is not None:
                    p, s, conf = state.score, state.success_rate, state.confidence
                else:
                    p, s, conf = cand.benchmark.quality, cand.benchmark.success_rate, 0.0
                scored.append(_Scored(
                    provider=cand.provider,
                    capability=cand.capability,
                    policy_score=p,
                    success_rate=s,
                    confidence=conf,
                    preferred=cand.provider in preferred,
                ))
            return scored

        # Policy-only: every provider with learned state for the domain
        return [
            _Scored(
                provider=state.provider,
                capability=self._capability_for(state.provider, profile),
                policy_score=state.score,
                success_rate=state.success_rate,
                confidence=state.confidence,
                preferred=state.provider in preferred,
            )
            for state in self._policy.best_for(profile.domain, constraints)
            if state.provider in self._providers
        ]

    def _capability_for(self, provider_id: str, profile: TaskProfile) -> str:
        offered = self._providers[provider_id].capabilities
        for tag in offered:
            if tag in profile.required_capabilities:
                return tag
        if profile.required_capabilities:
            return sorted(profile.required_capabilities)[0]
        return offered[0] if offered else "general"

    # ── Scoring ───────────────────────────────────────────────

    @staticmethod
    def _combine(c: _Scored, settings: ResolverSettings) -> float:
        combined = _POLICY_WEIGHT * c.policy_score + _SUCCESS_WEIGHT * c.success_rate
        if c.preferred:
            combined += settings.preference_bonus
        return combined * (0.5 + 0.5 * c.confidence)

    @staticmethod
    def _justify(c: _Scored, exploratory: bool, rule_name: str | None) -> str:
        mode = "exploratory" if exploratory else "optimal"
        source = f"rule '{rule_name}'" if rule_name else "learned policy"
        return (
            f"{mode} selection of {c.provider} via {source}: "
            f"score {c.score:.3f} (policy {c.policy_score:.2f}, "
            f"success {c.success_rate:.2f}, confidence {c.confidence:.2f})"
        )

    def _default_decision(
        self, profile: TaskProfile, constraints: RouteConstraints,
    ) -> RoutingDecision:
        """System default, skipping it when the caller excluded it.

        An excluded default gives way to the first registered provider
        that is not excluded; with every provider excluded the decision
        names no provider.
        """
        provider = self._default_provider
        if provider in constraints.excluded_providers:
            provider = next(
                (p for p in sorted(self._providers) if p not in constraints.excluded_providers),
                "",
            )
        logger.info("Routing %s → %s (default, no candidates)", profile.domain, provider or "-")
        return RoutingDecision(
            provider=provider,
            capability="general",
            domain=profile.domain,
            confidence=0.0,
            justification=NO_POLICY_JUSTIFICATION,
            is_default=True,
        )
