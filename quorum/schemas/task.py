"""Task classification schemas.

Defines the closed set of task domains, complexity tiers, and the
immutable TaskProfile produced by the classifier for every request.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TaskDomain(StrEnum):
    """Domain tag assigned to an incoming task.

    Closed set: routing rules, policy records, and committee
    specializations are all keyed on these values.
    """

    SOFTWARE = "software"
    CONTENT = "content"
    ANALYSIS = "analysis"
    CREATIVE = "creative"
    RESEARCH = "research"
    CONVERSATION = "conversation"
    GENERAL = "general"


class Complexity(StrEnum):
    """Complexity tier derived from indicator keywords."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ClassificationHints(BaseModel):
    """Optional caller-supplied hints that override the keyword scan."""

    domain: TaskDomain | None = Field(
        default=None, description="Explicit domain; wins over the keyword scan",
    )
    complexity: Complexity | None = Field(
        default=None, description="Explicit complexity override",
    )
    capabilities: list[str] = Field(
        default_factory=list, description="Extra required capabilities",
    )
    target_cost: float | None = Field(
        default=None, ge=0.0, description="Target cost per call in USD",
    )
    target_quality: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Target quality score",
    )
    target_latency_ms: int | None = Field(
        default=None, gt=0, description="Target latency in milliseconds",
    )
    high_stakes: bool | None = Field(
        default=None, description="Force the high-stakes flag on or off",
    )


class TaskProfile(BaseModel):
    """Structured classification of an incoming request.

    Produced once per request by the TaskClassifier and never mutated
    afterwards; the Route Resolver and Consensus Orchestrator only read it.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(default="", description="Original task text")
    domain: TaskDomain = Field(
        default=TaskDomain.GENERAL, description="Classified task domain",
    )
    complexity: Complexity = Field(
        default=Complexity.MEDIUM, description="Classified complexity tier",
    )
    required_capabilities: frozenset[str] = Field(
        default_factory=frozenset,
        description="Capabilities a provider must offer for this task",
    )
    target_cost: float = Field(
        default=0.05, ge=0.0, description="Target cost per call in USD",
    )
    target_quality: float = Field(
        default=0.75, ge=0.0, le=1.0, description="Target quality score",
    )
    target_latency_ms: int = Field(
        default=8_000, gt=0, description="Target latency in milliseconds",
    )
    high_stakes: bool = Field(
        default=False,
        description="Whether the task warrants a consensus session",
    )
    matched_keywords: tuple[str, ...] = Field(
        default=(), description="Keywords that drove the domain decision",
    )
