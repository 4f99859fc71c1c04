"""Multi-participant consensus sessions."""

from quorum.consensus.committee import select_committee, temperature_for
from quorum.consensus.extraction import (
    extract_concerns,
    extract_confidence,
    extract_reasoning,
    extract_suggestions,
)
from quorum.consensus.protocol import ConsensusOrchestrator
from quorum.consensus.session import ConsensusSession
from quorum.consensus.voting import (
    consensus_score,
    parse_vote,
    quality_score,
    refinement_areas,
)

__all__ = [
    "ConsensusOrchestrator",
    "ConsensusSession",
    "consensus_score",
    "extract_concerns",
    "extract_confidence",
    "extract_reasoning",
    "extract_suggestions",
    "parse_vote",
    "quality_score",
    "refinement_areas",
    "select_committee",
    "temperature_for",
]
