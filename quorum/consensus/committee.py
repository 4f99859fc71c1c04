"""Committee selection for consensus sessions."""

from __future__ import annotations

import logging

from quorum.schemas.consensus import CommunicationStyle, ConsensusRequest, Participant, Personality
from quorum.schemas.task import TaskProfile

logger = logging.getLogger(__name__)

# Sampling temperature per communication style
_STYLE_TEMPERATURE: dict[CommunicationStyle, float] = {
    CommunicationStyle.ANALYTICAL: 0.3,
    CommunicationStyle.CREATIVE: 0.8,
    CommunicationStyle.PRAGMATIC: 0.4,
    CommunicationStyle.CRITICAL: 0.2,
    CommunicationStyle.COLLABORATIVE: 0.5,
}


def temperature_for(personality: Personality) -> float:
    return _STYLE_TEMPERATURE.get(personality.communication_style, 0.5)


def find_coordinator(pool: dict[str, Participant]) -> Participant | None:
    for participant in pool.values():
        if participant.coordinator:
            return participant
    return None


def _overlaps(participant: Participant, profile: TaskProfile) -> bool:
    if profile.domain in participant.domains:
        return True
    lower = profile.text.lower()
    return any(tag.lower() in lower for tag in participant.specializations)


def select_committee(
    pool: dict[str, Participant],
    request: ConsensusRequest,
    profile: TaskProfile,
    *,
    min_size: int = 3,
    max_size: int = 5,
) -> list[Participant]:
    """Pick the committee for a session.

    Order of preference: required participants, participants whose
    specializations overlap the task, optional participants, then the
    rest of the pool until ``min_size`` is met. The result is capped at
    ``max_size`` and always contains the coordinator when the pool has one.
    """
    chosen: list[Participant] = []
    chosen_ids: set[str] = set()

    def _add(participant: Participant) -> None:
        if participant.participant_id not in chosen_ids:
            chosen.append(participant)
            chosen_ids.add(participant.participant_id)

    for pid in request.required_participants:
        if pid in pool:
            _add(pool[pid])
        else:
            logger.warning("Required participant '%s' is not in the pool", pid)

    for participant in pool.values():
        if _overlaps(participant, profile):
            _add(participant)

    for pid in request.optional_participants:
        if pid in pool:
            _add(pool[pid])
        else:
            logger.debug("Optional participant '%s' is not in the pool", pid)

    for participant in pool.values():
        if len(chosen) >= min_size:
            break
        _add(participant)

    required = set(request.required_participants)
    committee = chosen[:max_size]
    dropped = [p.participant_id for p in chosen[max_size:] if p.participant_id in required]
    if dropped:
        logger.warning(
            "Committee capped at %d; dropping required participants: %s",
            max_size, ", ".join(dropped),
        )

    coordinator = find_coordinator(pool)
    if coordinator is not None and coordinator.participant_id not in {
        p.participant_id for p in committee
    }:
        if len(committee) < max_size:
            committee.append(coordinator)
        else:
            # Replace the last member that was not explicitly required
            for i in range(len(committee) - 1, -1, -1):
                if committee[i].participant_id not in required:
                    committee[i] = coordinator
                    break
            else:
                logger.warning(
                    "Required participant '%s' gives up its seat to the coordinator",
                    committee[-1].participant_id,
                )
                committee[-1] = coordinator

    logger.info(
        "Committee for %s task: %s",
        profile.domain, ", ".join(p.participant_id for p in committee),
    )
    return committee
