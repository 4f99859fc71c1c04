"""Provider registry and adapter result schemas.

Defines the fixed benchmark record shape, the per-provider registry
entry loaded from providers.toml, and the typed result every provider
adapter returns instead of raising.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from quorum.schemas.task import TaskDomain


class BenchmarkScores(BaseModel):
    """Declared benchmark numbers for a provider.

    Static configuration data. These are inputs supplied by whoever
    maintains providers.toml, not values computed at runtime.
    """

    quality: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Declared output quality",
    )
    success_rate: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Declared call success rate",
    )
    cost: float = Field(
        default=0.0, ge=0.0, description="Typical cost per call in USD",
    )
    latency_ms: int = Field(
        default=5_000, ge=0, description="Typical latency in milliseconds",
    )


class ProviderConfig(BaseModel):
    """Configuration for a single backend provider in the registry.

    Loaded from providers.toml. Each entry carries the LiteLLM routing
    information, capability tags, specialization domains, cost rates,
    and benchmark scores.
    """

    provider_id: str = Field(description="Registry key of the provider")
    model: str = Field(description="LiteLLM model identifier")
    display_name: str = Field(description="Human-friendly provider name")
    api_key_env: str = Field(
        default="", description="Environment variable holding the API key",
    )
    api_base: str = Field(
        default="", description="Custom API base URL (empty = provider default)",
    )
    capabilities: list[str] = Field(
        default_factory=list, description="Capability tags offered",
    )
    specializations: list[TaskDomain] = Field(
        default_factory=list, description="Domains this provider is strong in",
    )
    cost_input: float = Field(
        default=0.0, ge=0.0, description="Cost per 1M input tokens in USD",
    )
    cost_output: float = Field(
        default=0.0, ge=0.0, description="Cost per 1M output tokens in USD",
    )
    benchmark: BenchmarkScores = Field(
        default_factory=BenchmarkScores, description="Declared benchmark scores",
    )


class FailureKind(StrEnum):
    """Classification of a failed provider call."""

    TIMEOUT = "timeout"
    AUTH = "auth"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class InvokeOptions(BaseModel):
    """Per-call options passed through the adapter contract."""

    system: str = Field(default="", description="System prompt for the call")
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature",
    )
    max_tokens: int | None = Field(
        default=None, gt=0, description="Completion token ceiling",
    )
    timeout: float = Field(
        default=120.0, gt=0.0, description="Timeout in seconds for the call",
    )


class ProviderResult(BaseModel):
    """Outcome of a single provider invocation.

    Adapters return this for both success and failure; a failed call
    carries ``success=False`` with a typed ``failure`` kind rather than
    raising into the caller.
    """

    provider_id: str = Field(description="Provider that handled the call")
    content: str = Field(default="", description="Response text")
    units: int = Field(default=0, ge=0, description="Tokens or billing units consumed")
    cost: float = Field(default=0.0, ge=0.0, description="Cost of the call in USD")
    latency_ms: float = Field(default=0.0, ge=0.0, description="Wall-clock latency")
    success: bool = Field(default=True, description="Whether the call succeeded")
    failure: FailureKind | None = Field(
        default=None, description="Failure classification when success is False",
    )
    error: str = Field(default="", description="Short error description")

    @classmethod
    def failed(
        cls,
        provider_id: str,
        kind: FailureKind,
        error: str = "",
        latency_ms: float = 0.0,
    ) -> ProviderResult:
        """Build a failed result."""
        return cls(
            provider_id=provider_id,
            success=False,
            failure=kind,
            error=error,
            latency_ms=latency_ms,
        )
