"""Vote parsing, consensus scoring, refinement areas and quality.

Pure functions over a round's AgentResponses. Vote collection itself
lives in the orchestrator, which owns the adapter calls.
"""

from __future__ import annotations

import re
from collections import Counter

from quorum.schemas.consensus import AgentResponse

# First integer in a vote reply
_VOTE_RE = re.compile(r"(\d+)")

DEFAULT_VOTE = 5
# Average vote assumed for a response nobody voted on
UNVOTED_SCORE = 7.0
# Responses averaging below this need another pass
LOW_VOTE_THRESHOLD = 6.0
# Concern mentions needed to count as shared
COMMON_CONCERN_MIN = 2

LOW_SCORING_AREA = "Address concerns about low-scoring approaches"


def parse_vote(content: str) -> int:
    """First integer in the reply clamped to 1-10; unparseable gives 5."""
    match = _VOTE_RE.search(content or "")
    if not match:
        return DEFAULT_VOTE
    return max(1, min(10, int(match.group(1))))


def average_vote(response: AgentResponse) -> float:
    """Mean vote received, 7 when nobody voted."""
    avg = response.average_vote
    return UNVOTED_SCORE if avg is None else avg


def consensus_score(responses: list[AgentResponse]) -> float:
    """``(avg_confidence/100 + avg_vote/10) / 2`` over one round.

    Returns 0.0 for an empty round.
    """
    if not responses:
        return 0.0
    avg_confidence = sum(r.confidence for r in responses) / len(responses)
    avg_vote = sum(average_vote(r) for r in responses) / len(responses)
    return (avg_confidence / 100 + avg_vote / 10) / 2


def refinement_areas(responses: list[AgentResponse]) -> list[str]:
    """Areas to fold into the next round.

    Low-scoring responses (voted, average below 6) add one generic area;
    concerns raised at least twice (case-insensitive) add one combined
    area naming up to three of them.
    """
    areas: list[str] = []
    low = [
        r for r in responses
        if r.average_vote is not None and r.average_vote < LOW_VOTE_THRESHOLD
    ]
    if low:
        areas.append(LOW_SCORING_AREA)

    counts = Counter(c.lower() for r in responses for c in r.concerns)
    # Counter preserves first-seen order among equal counts
    common = [c for c, n in counts.items() if n >= COMMON_CONCERN_MIN]
    if common:
        areas.append(f"Address common concerns: {', '.join(common[:3])}")
    return areas


def quality_score(
    all_responses: list[AgentResponse],
    consensus_reached: bool,
    refinement_count: int,
    participant_count: int,
) -> float:
    """Aggregate session quality on a 0-100 scale.

    ``avg_confidence·0.4 + level·0.4 + min(20, 5·refinements) +
    min(20, 4·participants)`` where level is 100 with consensus, else 60.
    Confidence is averaged over every response in the session.
    """
    if not all_responses:
        return 0.0
    avg_confidence = sum(r.confidence for r in all_responses) / len(all_responses)
    level = 100 if consensus_reached else 60
    refinement_bonus = min(20, 5 * refinement_count)
    participation_bonus = min(20, 4 * participant_count)
    return min(100.0, avg_confidence * 0.4 + level * 0.4 + refinement_bonus + participation_bonus)


def best_response(responses: list[AgentResponse]) -> AgentResponse | None:
    """Highest-confidence response; the earliest wins ties."""
    best: AgentResponse | None = None
    for r in responses:
        if best is None or r.confidence > best.confidence:
            best = r
    return best
