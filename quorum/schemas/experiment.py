"""A/B experiment schemas.

An Experiment owns a list of weighted Variants. Weights sum to 1.0,
counters only grow, and the winner is set once on completion.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ExperimentStatus(StrEnum):
    """Experiment lifecycle: active → (paused) → completed."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class VariantSpec(BaseModel):
    """Caller input describing one variant at creation time."""

    name: str = Field(description="Variant name")
    weight: float | None = Field(
        default=None, ge=0.0, le=1.0,
        description="Traffic weight; omit on every variant for an even split",
    )
    config: dict[str, Any] = Field(
        default_factory=dict, description="Variant configuration payload",
    )
    variant_id: str | None = Field(
        default=None, description="Explicit id (defaults to the name)",
    )


class Variant(BaseModel):
    """One weighted alternative of an experiment, with its counters."""

    variant_id: str = Field(description="Variant identifier, unique per experiment")
    name: str = Field(description="Variant name")
    weight: float = Field(ge=0.0, le=1.0, description="Traffic weight")
    config: dict[str, Any] = Field(
        default_factory=dict, description="Variant configuration payload",
    )
    impressions: int = Field(default=0, ge=0, description="Times drawn")
    conversions: int = Field(default=0, ge=0, description="Recorded conversions")
    avg_score: float = Field(
        default=0.0, description="Running mean of conversion scores",
    )

    @property
    def conversion_rate(self) -> float:
        """Conversions per impression (0 when never drawn)."""
        if self.impressions == 0:
            return 0.0
        return self.conversions / self.impressions

    @property
    def combined_score(self) -> float:
        """Score used to pick the winner on completion."""
        return 0.6 * self.conversion_rate + 0.4 * self.avg_score


class Experiment(BaseModel):
    """A named A/B test over weighted variants."""

    experiment_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique experiment identifier (UUID v4)",
    )
    name: str = Field(description="Experiment name")
    description: str = Field(default="", description="What is being tested")
    variants: list[Variant] = Field(description="Variants in declaration order")
    status: ExperimentStatus = Field(
        default=ExperimentStatus.ACTIVE, description="Lifecycle status",
    )
    winner_id: str | None = Field(
        default=None, description="Winning variant, set only on completion",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the experiment was created",
    )
    completed_at: datetime | None = Field(
        default=None, description="When the experiment was concluded",
    )

    def variant(self, variant_id: str) -> Variant | None:
        """Look up a variant by id."""
        for v in self.variants:
            if v.variant_id == variant_id:
                return v
        return None


class VariantResult(BaseModel):
    """Per-variant statistics reported by ExperimentManager.results()."""

    variant_id: str
    name: str
    weight: float
    impressions: int
    conversions: int
    conversion_rate: float
    avg_score: float
    combined_score: float
