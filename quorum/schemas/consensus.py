"""Consensus session schemas.

Defines committee participants and their personality framing, the
per-round response records, the session state machine states, and
the ConsensusResult returned to callers.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from quorum.schemas.routing import RoutingDecision
from quorum.schemas.task import TaskDomain


class CommunicationStyle(StrEnum):
    """How a participant frames its contribution."""

    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    PRAGMATIC = "pragmatic"
    CRITICAL = "critical"
    COLLABORATIVE = "collaborative"


class RiskTolerance(StrEnum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class DecisionStyle(StrEnum):
    FAST = "fast"
    DELIBERATE = "deliberate"
    CONSENSUS_DRIVEN = "consensus-driven"


class Personality(BaseModel):
    """Prompt-shaping metadata for a participant.

    Only affects the context sent to the provider; the protocol treats
    every participant identically.
    """

    traits: list[str] = Field(default_factory=list, description="Trait keywords")
    communication_style: CommunicationStyle = Field(
        default=CommunicationStyle.ANALYTICAL, description="Communication style",
    )
    risk_tolerance: RiskTolerance = Field(
        default=RiskTolerance.MODERATE, description="Risk tolerance",
    )
    decision_style: DecisionStyle = Field(
        default=DecisionStyle.DELIBERATE, description="Decision style",
    )


class Participant(BaseModel):
    """A member of the participant pool, loaded from committee.toml."""

    participant_id: str = Field(description="Unique participant id")
    name: str = Field(description="Display name")
    role: str = Field(description="Role description used in the prompt")
    personality: Personality = Field(
        default_factory=Personality, description="Personality framing",
    )
    domains: list[TaskDomain] = Field(
        default_factory=list, description="Domains this participant specializes in",
    )
    specializations: list[str] = Field(
        default_factory=list, description="Free-form specialization tags",
    )
    preferred_providers: list[str] = Field(
        default_factory=list, description="Providers favoured for this seat",
    )
    coordinator: bool = Field(
        default=False, description="Whether this participant synthesizes the answer",
    )


class CommitteeSeat(BaseModel):
    """A participant bound to a routing decision for one round."""

    participant: Participant = Field(description="The seated participant")
    decision: RoutingDecision = Field(description="Provider assignment")

    @property
    def participant_id(self) -> str:
        return self.participant.participant_id

    @property
    def provider(self) -> str:
        return self.decision.provider


class AgentResponse(BaseModel):
    """One participant's contribution to one round."""

    participant_id: str = Field(description="Responding participant")
    provider: str = Field(description="Provider that produced the response")
    round: int = Field(ge=1, description="Round number (1-based)")
    content: str = Field(description="Response text")
    confidence: float = Field(
        ge=0.0, le=100.0, description="Self-reported confidence (0-100)",
    )
    reasoning: str = Field(default="", description="Extracted reasoning")
    suggestions: list[str] = Field(
        default_factory=list, description="Extracted suggestions",
    )
    concerns: list[str] = Field(default_factory=list, description="Extracted concerns")
    votes: dict[str, int] = Field(
        default_factory=dict,
        description="Voter participant id → score (1-10) for this response",
    )
    cost: float = Field(default=0.0, ge=0.0, description="Cost of the call in USD")
    latency_ms: float = Field(default=0.0, ge=0.0, description="Call latency")

    @property
    def average_vote(self) -> float | None:
        """Mean vote received, or None when nobody voted."""
        if not self.votes:
            return None
        return sum(self.votes.values()) / len(self.votes)


class ConversationRound(BaseModel):
    """Append-only record of one completed round."""

    round: int = Field(ge=1, description="Round number (1-based)")
    seats: dict[str, str] = Field(
        default_factory=dict, description="Participant id → assigned provider",
    )
    responses: list[AgentResponse] = Field(
        default_factory=list, description="Responses that arrived in time",
    )
    failed: dict[str, str] = Field(
        default_factory=dict,
        description="Participant id → reason for the dropped call",
    )
    consensus_score: float = Field(
        default=0.0, description="Blended confidence/vote score for the round",
    )
    consensus_reached: bool = Field(
        default=False, description="Whether the score met the threshold",
    )
    refinement_areas: list[str] = Field(
        default_factory=list, description="Areas folded into the next round",
    )


class SessionStatus(StrEnum):
    """Consensus session state machine states."""

    INITIALIZING = "initializing"
    ROUND_IN_PROGRESS = "round_in_progress"
    CONSENSUS_CHECK = "consensus_check"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ABORTED = "aborted"


class ConsensusRequest(BaseModel):
    """Input to a consensus session."""

    task: str = Field(description="Task text")
    required_participants: list[str] = Field(
        default_factory=list, description="Participant ids that must be seated",
    )
    optional_participants: list[str] = Field(
        default_factory=list, description="Participant ids seated if room remains",
    )
    expected_output: str = Field(
        default="", description="Shape of the answer the caller expects",
    )
    context: str = Field(default="", description="Extra task context")
    round_timeout: float | None = Field(
        default=None, gt=0.0,
        description="Per-round deadline in seconds; None uses the engine default",
    )


class ConsensusResult(BaseModel):
    """Outcome of a consensus session."""

    session_id: str = Field(description="Session identifier")
    final_answer: str = Field(description="Synthesized or fallback answer")
    consensus_reached: bool = Field(description="Whether consensus was reached")
    status: SessionStatus = Field(description="Terminal session status")
    total_rounds: int = Field(ge=0, description="Rounds conducted")
    consensus_score: float = Field(
        default=0.0, description="Consensus score of the final round",
    )
    quality_score: float = Field(
        default=0.0, ge=0.0, le=100.0, description="Aggregated quality (0-100)",
    )
    total_cost: float = Field(default=0.0, ge=0.0, description="Total cost in USD")
    participants: list[str] = Field(
        default_factory=list, description="Seated participant ids",
    )
    rounds: list[ConversationRound] = Field(
        default_factory=list, description="Round history",
    )
    refinement_history: list[str] = Field(
        default_factory=list, description="Refinement entries, one per round",
    )
    fallback_used: bool = Field(
        default=False, description="Whether a direct single-provider answer was used",
    )
    abort_reason: str = Field(default="", description="Why the session aborted")
    duration_seconds: float = Field(
        default=0.0, ge=0.0, description="Wall-clock duration",
    )
