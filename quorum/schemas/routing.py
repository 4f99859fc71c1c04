"""Routing schemas for the rule table and the Route Resolver.

Defines the static RoutingRule record, caller constraints, the
candidate annotations passed between selector and resolver, and the
RoutingDecision returned to callers.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from quorum.schemas.providers import BenchmarkScores, ProviderResult
from quorum.schemas.task import TaskDomain

# Domain-match entry that applies a rule to every domain
WILDCARD = "*"


class RuleThresholds(BaseModel):
    """Hard constraint thresholds declared on a routing rule."""

    model_config = ConfigDict(frozen=True)

    min_quality: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Minimum benchmark quality",
    )
    max_cost: float | None = Field(
        default=None, ge=0.0, description="Maximum cost per call in USD",
    )
    max_latency_ms: int | None = Field(
        default=None, gt=0, description="Maximum latency in milliseconds",
    )


class RoutingRule(BaseModel):
    """One entry of the static rule table.

    Loaded from rules.toml and never mutated at runtime. Rules are
    totally ordered by priority (higher first), ties broken by the
    order in which they were declared.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unique rule name")
    domains: tuple[str, ...] = Field(
        description="Domains this rule applies to, or '*' for all",
    )
    primary: str = Field(description="Provider id of the primary choice")
    capability_weights: dict[str, float] = Field(
        default_factory=dict,
        description="Capability tag → weight for the primary provider",
    )
    fallbacks: tuple[str, ...] = Field(
        default=(), description="Ordered fallback provider ids",
    )
    thresholds: RuleThresholds = Field(
        default_factory=RuleThresholds, description="Hard constraint thresholds",
    )
    priority: int = Field(default=0, description="Higher priority wins")

    @field_validator("domains")
    @classmethod
    def _check_domains(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("rule must match at least one domain")
        valid = {d.value for d in TaskDomain} | {WILDCARD}
        unknown = [d for d in value if d not in valid]
        if unknown:
            raise ValueError(f"unknown domains in rule: {unknown}")
        return value

    @field_validator("capability_weights")
    @classmethod
    def _check_weights(cls, value: dict[str, float]) -> dict[str, float]:
        for tag, weight in value.items():
            if weight < 0:
                raise ValueError(f"capability weight for '{tag}' must be >= 0")
        return value

    def matches(self, domain: TaskDomain) -> bool:
        """Whether this rule applies to the given domain."""
        return WILDCARD in self.domains or domain.value in self.domains


class RouteConstraints(BaseModel):
    """Caller-supplied exclusions, preferences and ceilings."""

    excluded_providers: frozenset[str] = Field(
        default_factory=frozenset, description="Providers that must not be chosen",
    )
    preferred_providers: tuple[str, ...] = Field(
        default=(), description="Providers that receive the preference bonus",
    )
    max_cost: float | None = Field(
        default=None, ge=0.0, description="Cost ceiling per call in USD",
    )
    max_latency_ms: int | None = Field(
        default=None, gt=0, description="Latency ceiling in milliseconds",
    )
    min_quality: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Benchmark quality floor",
    )
    min_confidence: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Policy confidence floor for policy-only candidates",
    )

    def merged(self, **changes: object) -> RouteConstraints:
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=changes)


class RouteCandidate(BaseModel):
    """A provider proposed by the rule table, annotated with its benchmark."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(description="Provider id")
    capability: str = Field(description="Capability the provider is used for")
    benchmark: BenchmarkScores = Field(
        default_factory=BenchmarkScores, description="Declared benchmark scores",
    )


class RuleMatch(BaseModel):
    """Result of a successful Rule-Based Selector lookup."""

    model_config = ConfigDict(frozen=True)

    rule_name: str = Field(description="Name of the winning rule")
    primary: RouteCandidate = Field(description="Primary candidate")
    fallbacks: tuple[RouteCandidate, ...] = Field(
        default=(), description="Ordered fallback candidates",
    )

    @property
    def chain(self) -> list[RouteCandidate]:
        """Primary followed by the fallbacks, in order."""
        return [self.primary, *self.fallbacks]


class ResolverSettings(BaseModel):
    """Tunable Route Resolver parameters.

    Defaults come from defaults.toml; experiment variants may override
    them per call to A/B-test resolver behaviour.
    """

    exploration_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Probability of exploring top-k",
    )
    top_k: int = Field(default=3, ge=1, description="Exploration pool size")
    preference_bonus: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Bonus for preferred providers",
    )
    max_alternatives: int = Field(
        default=3, ge=0, description="Alternatives returned with a decision",
    )


class RouteAlternative(BaseModel):
    """A ranked runner-up returned alongside a RoutingDecision."""

    provider: str = Field(description="Provider id")
    capability: str = Field(description="Capability the provider would serve")
    score: float = Field(description="Combined score")


class RoutingDecision(BaseModel):
    """Final routing decision for one task.

    Produced fresh on every resolve call. ``is_default`` marks the
    system-default fallback returned when no candidate survived.
    """

    provider: str = Field(description="Selected provider id")
    capability: str = Field(description="Capability the provider will serve")
    domain: TaskDomain = Field(description="Domain of the routed task")
    confidence: float = Field(
        ge=0.0, le=1.0, description="Confidence in the selection",
    )
    justification: str = Field(description="Human-readable explanation")
    score: float = Field(default=0.0, description="Contributing combined score")
    alternatives: list[RouteAlternative] = Field(
        default_factory=list, description="Ranked runner-up candidates",
    )
    exploratory: bool = Field(
        default=False, description="Whether the pick was an exploration draw",
    )
    is_default: bool = Field(
        default=False, description="Whether this is the system-default fallback",
    )
    rule_name: str | None = Field(
        default=None, description="Rule that seeded the candidate set",
    )
    experiment_id: str | None = Field(
        default=None, description="Experiment that shaped this decision",
    )
    variant_id: str | None = Field(
        default=None, description="Variant drawn for this decision",
    )
    decided_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the decision was made",
    )

    @model_validator(mode="after")
    def _default_has_no_confidence(self) -> RoutingDecision:
        if self.is_default and self.confidence != 0.0:
            raise ValueError("default decisions carry confidence 0")
        return self

    @property
    def chain(self) -> list[str]:
        """Selected provider followed by alternatives, in rank order."""
        return [self.provider, *(a.provider for a in self.alternatives)]


class ExecutionResult(BaseModel):
    """Outcome of routing a task and invoking the chosen provider chain."""

    decision: RoutingDecision = Field(description="Routing decision that was executed")
    provider: str = Field(description="Provider that produced the result")
    result: ProviderResult = Field(description="Successful provider result")
    attempted: list[str] = Field(
        default_factory=list, description="Providers tried, in order",
    )
    errors: dict[str, str] = Field(
        default_factory=dict, description="Provider id → error for failed attempts",
    )


class ProviderUsage(BaseModel):
    """How often one provider was selected within the history window."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(description="Provider id")
    selections: int = Field(ge=0, description="Decisions that selected the provider")
    avg_confidence: float = Field(
        ge=0.0, le=1.0, description="Mean confidence of those decisions",
    )
    exploratory: int = Field(default=0, ge=0, description="Exploration draws")
    defaults: int = Field(default=0, ge=0, description="System-default fallbacks")


class RoutingStats(BaseModel):
    """Aggregate view over the recent routing history."""

    model_config = ConfigDict(frozen=True)

    total_decisions: int = Field(ge=0, description="Decisions in the window")
    avg_confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Mean decision confidence",
    )
    avg_estimated_cost: float = Field(
        default=0.0, ge=0.0, description="Mean benchmark cost of the selected providers",
    )
    avg_estimated_latency_ms: float = Field(
        default=0.0, ge=0.0, description="Mean benchmark latency of the selected providers",
    )
    exploration_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Fraction of exploratory picks",
    )
    default_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Fraction of system-default fallbacks",
    )
    providers: tuple[ProviderUsage, ...] = Field(
        default=(), description="Per-provider usage, most selected first",
    )
