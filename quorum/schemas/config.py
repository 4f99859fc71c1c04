"""Engine configuration schemas.

Populated from the [routing], [consensus] and [storage] sections of
defaults.toml. Every field has a default so an empty file is valid.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from quorum.schemas.routing import ResolverSettings


class RoutingConfig(BaseModel):
    """Policy learning and resolver defaults."""

    default_provider: str = Field(
        default="", description="Provider returned when no candidate survives",
    )
    learning_rate: float = Field(
        default=0.1, gt=0.0, le=1.0, description="EMA smoothing factor",
    )
    min_samples_for_confidence: int = Field(
        default=10, ge=1, description="Samples needed for full confidence",
    )
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
    seed: int | None = Field(
        default=None, description="Seed for the exploration RNG (None = random)",
    )
    history_size: int = Field(
        default=1000, ge=1, description="Routing decisions kept for history and stats",
    )

    def resolver_settings(self) -> ResolverSettings:
        """Project the resolver-tunable fields."""
        return ResolverSettings(
            exploration_rate=self.exploration_rate,
            top_k=self.top_k,
            preference_bonus=self.preference_bonus,
            max_alternatives=self.max_alternatives,
        )


class ConsensusConfig(BaseModel):
    """Consensus session bounds and timeouts."""

    max_rounds: int = Field(default=3, ge=1, description="Maximum rounds per session")
    threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Consensus score threshold",
    )
    min_participants: int = Field(
        default=3, ge=1, description="Committee size floor",
    )
    max_participants: int = Field(
        default=5, ge=1, description="Committee size ceiling",
    )
    call_timeout: float = Field(
        default=60.0, gt=0.0, description="Per-call timeout in seconds",
    )
    round_timeout: float = Field(
        default=120.0, gt=0.0, description="Per-round deadline in seconds",
    )
    vote_timeout: float = Field(
        default=30.0, gt=0.0, description="Per-vote-call timeout in seconds",
    )
    cost_budget: float | None = Field(
        default=None, ge=0.0,
        description="Stop starting refinement rounds once this cost is exceeded",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> ConsensusConfig:
        if self.min_participants > self.max_participants:
            raise ValueError("min_participants cannot exceed max_participants")
        return self


class StorageBackend(StrEnum):
    MEMORY = "memory"
    SQLITE = "sqlite"


class StorageConfig(BaseModel):
    """Where policy, feedback and experiment records are kept."""

    backend: StorageBackend = Field(
        default=StorageBackend.MEMORY, description="Storage backend",
    )
    db_path: Path = Field(
        default=Path("~/.quorum/quorum.db"), description="SQLite database path",
    )


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
