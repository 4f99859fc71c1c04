"""Consensus orchestrator: bounded multi-round committee deliberation.

Each round seats the committee on providers via the route resolver,
fans participant prompts out concurrently, waits at a single barrier
bounded by the round deadline, extracts self-reports, collects peer
votes, and checks the blended confidence/vote score against the
threshold. Rounds that miss consensus feed refinement areas into the
next round; the coordinator synthesizes the final answer.
"""

from __future__ import annotations

import asyncio
import logging

from quorum.classifier import TaskClassifier
from quorum.consensus.committee import find_coordinator, select_committee, temperature_for
from quorum.consensus.extraction import (
    extract_concerns,
    extract_confidence,
    extract_reasoning,
    extract_suggestions,
)
from quorum.consensus.session import ConsensusSession
from quorum.consensus.voting import (
    best_response,
    consensus_score,
    parse_vote,
    quality_score,
    refinement_areas,
)
from quorum.errors import NoProviderAvailable
from quorum.events import EngineEventEmitter, EventType, emit
from quorum.prompts import render_prompt
from quorum.providers.base import ProviderAdapter, invoke_safely
from quorum.routing.engine import RouteResolver
from quorum.schemas.config import ConsensusConfig
from quorum.schemas.consensus import (
    AgentResponse,
    CommitteeSeat,
    ConsensusRequest,
    ConsensusResult,
    ConversationRound,
    Participant,
    SessionStatus,
)
from quorum.schemas.providers import InvokeOptions, ProviderResult
from quorum.schemas.routing import RouteConstraints, RoutingDecision
from quorum.schemas.task import ClassificationHints, TaskProfile

logger = logging.getLogger(__name__)

# Completion ceiling for participant and synthesis calls
_RESPONSE_MAX_TOKENS = 1_500
_VOTE_MAX_TOKENS = 10


class ConsensusOrchestrator:
    """Runs consensus sessions over a participant pool.

    All collaborators are injected; the orchestrator holds no state
    between sessions beyond its configuration.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        resolver: RouteResolver,
        participants: dict[str, Participant],
        config: ConsensusConfig | None = None,
        *,
        classifier: TaskClassifier | None = None,
        emitter: EngineEventEmitter | None = None,
    ) -> None:
        self._adapter = adapter
        self._resolver = resolver
        self._pool = participants
        self._config = config or ConsensusConfig()
        self._classifier = classifier or TaskClassifier()
        self._emitter = emitter

    @property
    def config(self) -> ConsensusConfig:
        return self._config

    def create_session(self, request: ConsensusRequest) -> ConsensusSession:
        """Create a session the caller can hold on to for ``cancel()``."""
        return ConsensusSession(request)

    async def run(
        self,
        request: ConsensusRequest,
        session: ConsensusSession | None = None,
        hints: ClassificationHints | None = None,
    ) -> ConsensusResult:
        """Run a full consensus session.

        Returns:
            The ConsensusResult. Sessions that abort still return a
            result with ``consensus_reached=False``.

        Raises:
            NoProviderAvailable: If every round participant failed and the
                direct single-provider fallback also failed.
        """
        session = session or self.create_session(request)
        session.request = request
        profile = self._classifier.classify(request.task, hints)
        session.committee = select_committee(
            self._pool, request, profile,
            min_size=self._config.min_participants,
            max_size=self._config.max_participants,
        )
        await emit(
            self._emitter, EventType.SESSION_STARTED,
            session_id=session.session_id,
            participants=[p.participant_id for p in session.committee],
        )
        logger.info(
            "Consensus session %s started with %d participants",
            session.session_id, len(session.committee),
        )

        if not session.committee:
            return await self._abort_with_fallback(session, profile, "empty committee")

        consensus = False
        score = 0.0
        seats: list[CommitteeSeat] = []
        for round_no in range(1, self._config.max_rounds + 1):
            if session.cancelled:
                return await self._abort_cancelled(session)

            session.transition(SessionStatus.ROUND_IN_PROGRESS)
            seats = self._assign_seats(session.committee, profile)
            await emit(
                self._emitter, EventType.ROUND_STARTED,
                session_id=session.session_id, round=round_no,
                seats={s.participant_id: s.provider for s in seats},
            )
            responses, failed = await self._run_round(session, seats, round_no)
            record = ConversationRound(
                round=round_no,
                seats={s.participant_id: s.provider for s in seats},
                responses=responses,
                failed=failed,
            )

            if session.cancelled:
                session.record_round(record)
                return await self._abort_cancelled(session)
            if not responses:
                session.record_round(record)
                return await self._abort_with_fallback(
                    session, profile, f"no responses in round {round_no}",
                )

            session.transition(SessionStatus.CONSENSUS_CHECK)
            if round_no < self._config.max_rounds:
                await self._collect_votes(session, seats, responses)

            score = consensus_score(responses)
            consensus = score >= self._config.threshold
            record.consensus_score = score
            record.consensus_reached = consensus
            await emit(
                self._emitter, EventType.CONSENSUS_CHECKED,
                session_id=session.session_id, round=round_no,
                score=score, reached=consensus,
            )
            logger.info(
                "Round %d: %d responses, consensus score %.3f (%s)",
                round_no, len(responses), score, "reached" if consensus else "not reached",
            )

            if consensus or round_no == self._config.max_rounds:
                session.record_round(record)
                break
            if self._over_budget(session):
                logger.warning(
                    "Session %s exceeded cost budget (%.4f > %.4f); finalizing",
                    session.session_id, session.total_cost, self._config.cost_budget,
                )
                session.record_round(record)
                break
            if session.cancelled:
                session.record_round(record)
                return await self._abort_cancelled(session)

            areas = refinement_areas(responses)
            record.refinement_areas = areas
            session.record_round(record)
            session.refinement_areas = areas
            if areas:
                entry = f"Round {round_no}: {', '.join(areas)}"
                session.refinement_history.append(entry)
                await emit(
                    self._emitter, EventType.REFINEMENT_RECORDED,
                    session_id=session.session_id, round=round_no, areas=areas,
                )

        if session.cancelled:
            return await self._abort_cancelled(session)

        session.transition(SessionStatus.FINALIZING)
        final_answer = await self._synthesize(session, seats, profile)
        session.transition(SessionStatus.COMPLETE)

        result = self._build_result(session, final_answer, consensus, score)
        await emit(
            self._emitter, EventType.SESSION_COMPLETED,
            session_id=session.session_id,
            consensus_reached=consensus,
            rounds=result.total_rounds,
            quality=result.quality_score,
        )
        return result

    # ── Seating ───────────────────────────────────────────────

    def _assign_seats(
        self, committee: list[Participant], profile: TaskProfile,
    ) -> list[CommitteeSeat]:
        """Resolve a provider per participant, keeping providers distinct.

        Each participant's preferred providers receive the resolver's
        preference bonus. The first provider in the decision's ranked
        chain not already seated is used; when every ranked provider is
        taken the participant shares the top choice.
        """
        taken: set[str] = set()
        seats: list[CommitteeSeat] = []
        for participant in committee:
            decision = self._resolver.resolve(
                profile,
                RouteConstraints(preferred_providers=tuple(participant.preferred_providers)),
            )
            decision = self._distinct(decision, taken)
            taken.add(decision.provider)
            seats.append(CommitteeSeat(participant=participant, decision=decision))
        return seats

    @staticmethod
    def _distinct(decision: RoutingDecision, taken: set[str]) -> RoutingDecision:
        if decision.provider not in taken:
            return decision
        for alt in decision.alternatives:
            if alt.provider in taken:
                continue
            return decision.model_copy(update={
                "provider": alt.provider,
                "capability": alt.capability,
                "score": alt.score,
                "confidence": 0.0 if decision.is_default else max(0.0, min(1.0, alt.score)),
                "alternatives": [a for a in decision.alternatives if a is not alt],
                "justification": f"{decision.justification}; seated on {alt.provider} "
                                 f"to keep committee providers distinct",
            })
        return decision

    # ── Rounds ────────────────────────────────────────────────

    async def _run_round(
        self,
        session: ConsensusSession,
        seats: list[CommitteeSeat],
        round_no: int,
    ) -> tuple[list[AgentResponse], dict[str, str]]:
        previous = []
        if round_no > 1 and session.rounds:
            previous = [
                {
                    "name": session.participant_name(r.participant_id),
                    "confidence": r.confidence,
                    "content": r.content,
                }
                for r in session.rounds[-1].responses
            ]

        tasks: dict[asyncio.Task[ProviderResult], CommitteeSeat] = {}
        for seat in seats:
            prompt = render_prompt(
                "participant",
                participant=seat.participant,
                task=session.request.task,
                context=session.request.context,
                expected_output=session.request.expected_output,
                round=round_no,
                previous_responses=previous,
                refinement_areas=session.refinement_areas if round_no > 1 else [],
            )
            options = InvokeOptions(
                temperature=temperature_for(seat.participant.personality),
                max_tokens=_RESPONSE_MAX_TOKENS,
                timeout=self._config.call_timeout,
            )
            task = asyncio.create_task(
                invoke_safely(
                    self._adapter, seat.provider, prompt, options,
                    timeout=self._config.call_timeout,
                )
            )
            tasks[task] = seat

        done = await self._wait(session, list(tasks), self._round_timeout(session))

        responses: list[AgentResponse] = []
        failed: dict[str, str] = {}
        for task, seat in tasks.items():
            pid = seat.participant_id
            result = self._completed_result(task, done)
            if result is None:
                failed[pid] = "round deadline exceeded"
            else:
                session.total_cost += result.cost
                if not result.success:
                    failed[pid] = f"{result.failure}: {result.error}".rstrip(": ")
                elif not result.content.strip():
                    failed[pid] = "empty response"

            if pid in failed:
                logger.warning(
                    "Dropping %s from round %d (%s): %s",
                    pid, round_no, seat.provider, failed[pid],
                )
                await emit(
                    self._emitter, EventType.PARTICIPANT_DROPPED,
                    session_id=session.session_id, round=round_no,
                    participant_id=pid, reason=failed[pid],
                )
                continue

            response = AgentResponse(
                participant_id=pid,
                provider=seat.provider,
                round=round_no,
                content=result.content,
                confidence=extract_confidence(result.content),
                reasoning=extract_reasoning(result.content),
                suggestions=extract_suggestions(result.content),
                concerns=extract_concerns(result.content),
                cost=result.cost,
                latency_ms=result.latency_ms,
            )
            responses.append(response)
            await emit(
                self._emitter, EventType.RESPONSE_RECEIVED,
                session_id=session.session_id, round=round_no,
                participant_id=pid, confidence=response.confidence,
            )

        return responses, failed

    async def _collect_votes(
        self,
        session: ConsensusSession,
        seats: list[CommitteeSeat],
        responses: list[AgentResponse],
    ) -> None:
        """Each responding participant scores every other response.

        Failed or late vote calls are omitted from the vote map.
        """
        responded = {r.participant_id for r in responses}
        voters = [s for s in seats if s.participant_id in responded]

        tasks: dict[asyncio.Task[ProviderResult], tuple[CommitteeSeat, AgentResponse]] = {}
        for voter in voters:
            for response in responses:
                if response.participant_id == voter.participant_id:
                    continue
                prompt = render_prompt(
                    "vote",
                    voter=voter.participant,
                    author=session.participant_name(response.participant_id),
                    task=session.request.task,
                    content=response.content,
                )
                options = InvokeOptions(
                    temperature=0.0,
                    max_tokens=_VOTE_MAX_TOKENS,
                    timeout=self._config.vote_timeout,
                )
                task = asyncio.create_task(
                    invoke_safely(
                        self._adapter, voter.provider, prompt, options,
                        timeout=self._config.vote_timeout,
                    )
                )
                tasks[task] = (voter, response)

        if not tasks:
            return

        done = await self._wait(session, list(tasks), self._round_timeout(session))
        for task, (voter, response) in tasks.items():
            result = self._completed_result(task, done)
            if result is None:
                continue
            session.total_cost += result.cost
            if not result.success:
                logger.debug(
                    "Vote by %s on %s failed: %s",
                    voter.participant_id, response.participant_id, result.error,
                )
                continue
            score = parse_vote(result.content)
            response.votes[voter.participant_id] = score
            await emit(
                self._emitter, EventType.VOTE_CAST,
                session_id=session.session_id,
                voter=voter.participant_id,
                target=response.participant_id,
                score=score,
            )

    def _round_timeout(self, session: ConsensusSession) -> float:
        return session.request.round_timeout or self._config.round_timeout

    async def _wait(
        self,
        session: ConsensusSession,
        tasks: list[asyncio.Task[ProviderResult]],
        timeout: float,
    ) -> set[asyncio.Task[ProviderResult]]:
        """Fan-in barrier: wait for ``tasks`` until the deadline or cancellation.

        Tasks still pending at the deadline are cancelled and their
        results discarded. Returns the tasks that completed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        pending: set[asyncio.Task] = set(tasks)
        cancel_waiter = asyncio.create_task(session.wait_cancelled())
        try:
            while pending and not session.cancelled:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                _, still = await asyncio.wait(
                    pending | {cancel_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                still.discard(cancel_waiter)
                pending = still
        finally:
            cancel_waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return {t for t in tasks if t.done() and not t.cancelled()}

    @staticmethod
    def _completed_result(
        task: asyncio.Task[ProviderResult],
        done: set[asyncio.Task[ProviderResult]],
    ) -> ProviderResult | None:
        if task not in done or task.exception() is not None:
            return None
        return task.result()

    def _over_budget(self, session: ConsensusSession) -> bool:
        budget = self._config.cost_budget
        return budget is not None and session.total_cost > budget

    # ── Finalization ──────────────────────────────────────────

    async def _synthesize(
        self,
        session: ConsensusSession,
        seats: list[CommitteeSeat],
        profile: TaskProfile,
    ) -> str:
        """Coordinator synthesis, else the highest-confidence final response."""
        final = session.last_responses
        fallback = best_response(final)
        fallback_text = fallback.content if fallback else ""

        coordinator = find_coordinator(
            {p.participant_id: p for p in session.committee}
        ) or session.committee[0]
        seat = next((s for s in seats if s.participant_id == coordinator.participant_id), None)
        provider = seat.provider if seat else self._resolver.resolve(profile).provider

        prompt = render_prompt(
            "synthesis",
            coordinator=coordinator,
            task=session.request.task,
            expected_output=session.request.expected_output,
            total_rounds=len(session.rounds),
            responses=[
                {
                    "name": session.participant_name(r.participant_id),
                    "confidence": r.confidence,
                    "content": r.content,
                }
                for r in final
            ],
            refinement_history=session.refinement_history,
        )
        options = InvokeOptions(
            temperature=temperature_for(coordinator.personality),
            max_tokens=_RESPONSE_MAX_TOKENS,
            timeout=self._config.call_timeout,
        )
        result = await invoke_safely(
            self._adapter, provider, prompt, options, timeout=self._config.call_timeout,
        )
        session.total_cost += result.cost
        if result.success and result.content.strip():
            return result.content

        logger.warning(
            "Synthesis by %s failed (%s); using highest-confidence response",
            coordinator.participant_id, result.error or "empty response",
        )
        return fallback_text

    async def _abort_cancelled(self, session: ConsensusSession) -> ConsensusResult:
        """Abort on caller cancellation with the best answer so far."""
        session.transition(SessionStatus.ABORTED)
        best = best_response(session.last_responses)
        logger.info("Consensus session %s cancelled by caller", session.session_id)
        await emit(
            self._emitter, EventType.SESSION_ABORTED,
            session_id=session.session_id, reason="cancelled",
        )
        return self._build_result(
            session, best.content if best else "", False, 0.0,
            abort_reason="cancelled",
        )

    async def _abort_with_fallback(
        self,
        session: ConsensusSession,
        profile: TaskProfile,
        reason: str,
    ) -> ConsensusResult:
        """Abort and answer directly from a single provider.

        Raises:
            NoProviderAvailable: If no provider in the resolved chain answers.
        """
        session.transition(SessionStatus.ABORTED)
        logger.warning(
            "Consensus session %s aborted (%s); falling back to a direct answer",
            session.session_id, reason,
        )
        await emit(
            self._emitter, EventType.SESSION_ABORTED,
            session_id=session.session_id, reason=reason,
        )

        decision = self._resolver.resolve(profile)
        chain = [p for p in dict.fromkeys(decision.chain) if p]
        prompt = render_prompt(
            "direct",
            task=session.request.task,
            context=session.request.context,
            expected_output=session.request.expected_output,
        )
        options = InvokeOptions(
            max_tokens=_RESPONSE_MAX_TOKENS, timeout=self._config.call_timeout,
        )
        errors: list[str] = []
        for provider in chain:
            if session.cancelled:
                break
            result = await invoke_safely(
                self._adapter, provider, prompt, options, timeout=self._config.call_timeout,
            )
            session.total_cost += result.cost
            if result.success and result.content.strip():
                logger.info("Direct fallback answered by %s", provider)
                return self._build_result(
                    session, result.content, False, 0.0,
                    fallback_used=True, abort_reason=reason,
                )
            errors.append(f"{provider}: {result.error or 'empty response'}")

        raise NoProviderAvailable(session.session_id, "; ".join(errors) or reason)

    def _build_result(
        self,
        session: ConsensusSession,
        final_answer: str,
        consensus: bool,
        score: float,
        *,
        fallback_used: bool = False,
        abort_reason: str = "",
    ) -> ConsensusResult:
        return ConsensusResult(
            session_id=session.session_id,
            final_answer=final_answer,
            consensus_reached=consensus,
            status=session.status,
            total_rounds=len(session.rounds),
            consensus_score=score,
            quality_score=quality_score(
                session.all_responses,
                consensus,
                len(session.refinement_history),
                len(session.committee),
            ),
            total_cost=session.total_cost,
            participants=[p.participant_id for p in session.committee],
            rounds=list(session.rounds),
            refinement_history=list(session.refinement_history),
            fallback_used=fallback_used,
            abort_reason=abort_reason,
            duration_seconds=session.elapsed,
        )
