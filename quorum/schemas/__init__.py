"""Quorum schema definitions.

All Pydantic v2 models shared by the classifier, routing, experiments
and consensus layers.
"""

from quorum.schemas.config import (
    ConsensusConfig,
    EngineConfig,
    RoutingConfig,
    StorageBackend,
    StorageConfig,
)
from quorum.schemas.consensus import (
    AgentResponse,
    CommitteeSeat,
    CommunicationStyle,
    ConsensusRequest,
    ConsensusResult,
    ConversationRound,
    DecisionStyle,
    Participant,
    Personality,
    RiskTolerance,
    SessionStatus,
)
from quorum.schemas.experiment import (
    Experiment,
    ExperimentStatus,
    Variant,
    VariantResult,
    VariantSpec,
)
from quorum.schemas.policy import FeedbackEntry, PolicyState, policy_key
from quorum.schemas.providers import (
    BenchmarkScores,
    FailureKind,
    InvokeOptions,
    ProviderConfig,
    ProviderResult,
)
from quorum.schemas.routing import (
    WILDCARD,
    ExecutionResult,
    ProviderUsage,
    ResolverSettings,
    RouteAlternative,
    RouteCandidate,
    RouteConstraints,
    RoutingDecision,
    RoutingRule,
    RoutingStats,
    RuleMatch,
    RuleThresholds,
)
from quorum.schemas.task import (
    ClassificationHints,
    Complexity,
    TaskDomain,
    TaskProfile,
)

__all__ = [
    "AgentResponse",
    "BenchmarkScores",
    "ClassificationHints",
    "CommitteeSeat",
    "CommunicationStyle",
    "Complexity",
    "ConsensusConfig",
    "ConsensusRequest",
    "ConsensusResult",
    "ConversationRound",
    "DecisionStyle",
    "EngineConfig",
    "ExecutionResult",
    "Experiment",
    "ExperimentStatus",
    "FailureKind",
    "FeedbackEntry",
    "InvokeOptions",
    "Participant",
    "Personality",
    "PolicyState",
    "ProviderConfig",
    "ProviderResult",
    "ProviderUsage",
    "ResolverSettings",
    "RiskTolerance",
    "RouteAlternative",
    "RouteCandidate",
    "RouteConstraints",
    "RoutingConfig",
    "RoutingDecision",
    "RoutingRule",
    "RoutingStats",
    "RuleMatch",
    "RuleThresholds",
    "SessionStatus",
    "StorageBackend",
    "StorageConfig",
    "TaskDomain",
    "TaskProfile",
    "Variant",
    "VariantResult",
    "VariantSpec",
    "WILDCARD",
    "policy_key",
]
