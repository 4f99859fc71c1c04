"""Learned routing policy schemas.

PolicyState is the running performance record for a (provider, domain)
pair. FeedbackEntry is the immutable audit record of one completed
task's outcome, folded into exactly one PolicyState update.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from quorum.schemas.task import TaskDomain


class PolicyState(BaseModel):
    """Online-updated performance record for one (provider, domain) key."""

    provider: str = Field(description="Provider id")
    domain: TaskDomain = Field(description="Task domain")
    score: float = Field(
        default=0.5, ge=0.0, le=1.0, description="EMA of normalized ratings",
    )
    success_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Fraction of helpful outcomes",
    )
    avg_latency_ms: float = Field(
        default=0.0, ge=0.0, description="Mean reported latency",
    )
    avg_cost: float = Field(default=0.0, ge=0.0, description="Mean reported cost")
    sample_count: int = Field(default=0, ge=0, description="Feedback entries folded in")
    latency_samples: int = Field(
        default=0, ge=0, description="Entries that reported a latency",
    )
    cost_samples: int = Field(
        default=0, ge=0, description="Entries that reported a cost",
    )
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Sample-count based confidence",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the record was last updated",
    )

    @property
    def key(self) -> str:
        """Storage key for this record."""
        return policy_key(self.provider, self.domain)


def policy_key(provider: str, domain: TaskDomain | str) -> str:
    """Build the storage key for a (provider, domain) pair."""
    return f"{provider}:{TaskDomain(domain).value}"


class FeedbackEntry(BaseModel):
    """Immutable record of one completed task's outcome."""

    model_config = ConfigDict(frozen=True)

    feedback_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique feedback identifier (UUID v4)",
    )
    provider: str = Field(description="Provider that handled the task")
    domain: TaskDomain = Field(description="Domain of the task")
    rating: float = Field(ge=-1.0, le=1.0, description="Outcome rating in [-1, 1]")
    helpful: bool = Field(description="Binary helpfulness verdict")
    notes: str = Field(default="", description="Free-text notes")
    latency_ms: float | None = Field(
        default=None, ge=0.0, description="Reported latency of the call",
    )
    cost: float | None = Field(default=None, ge=0.0, description="Reported cost")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Caller-supplied extra fields",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the feedback was recorded",
    )
