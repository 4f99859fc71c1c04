"""Service facade wiring the engine components together.

QuorumService is constructed once and holds every collaborator
explicitly: classifier, rule selector, policy store, route resolver,
experiment manager and consensus orchestrator. Callers go through it
for routing queries, feedback, experiments and consensus sessions.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from quorum.classifier import TaskClassifier
from quorum.consensus.protocol import ConsensusOrchestrator
from quorum.consensus.session import ConsensusSession
from quorum.errors import RoutingFailure
from quorum.events import EngineEventEmitter, EventType, emit
from quorum.experiments.manager import ExperimentManager
from quorum.providers.base import ProviderAdapter, invoke_safely
from quorum.providers.litellm_provider import LiteLLMAdapter
from quorum.providers.registry import (
    load_engine_config,
    load_participants,
    load_providers,
    load_rules,
)
from quorum.routing.engine import RouteResolver
from quorum.routing.history import RoutingHistory
from quorum.routing.policy import PolicyStore
from quorum.routing.rules import RuleSelector
from quorum.schemas.config import EngineConfig, StorageBackend
from quorum.schemas.consensus import ConsensusRequest, ConsensusResult, Participant
from quorum.schemas.experiment import Experiment, ExperimentStatus, Variant, VariantSpec
from quorum.schemas.policy import FeedbackEntry
from quorum.schemas.providers import InvokeOptions, ProviderConfig
from quorum.schemas.routing import (
    ExecutionResult,
    ResolverSettings,
    RouteConstraints,
    RoutingDecision,
    RoutingRule,
    RoutingStats,
)
from quorum.schemas.task import ClassificationHints, TaskDomain
from quorum.storage.base import KeyValueStore
from quorum.storage.memory import MemoryStore
from quorum.storage.sqlite import SQLiteStore

logger = logging.getLogger(__name__)

# Variant config keys that adjust constraints rather than resolver settings
_CONSTRAINT_KEYS = ("preferred_providers", "excluded_providers")


class QuorumService:
    """Engine facade.

    Build with :meth:`create` to load the bundled TOML configuration, or
    construct directly with explicit registries for tests and embedding.
    """

    def __init__(
        self,
        *,
        providers: dict[str, ProviderConfig],
        rules: list[RoutingRule],
        participants: dict[str, Participant],
        config: EngineConfig | None = None,
        adapter: ProviderAdapter | None = None,
        store: KeyValueStore | None = None,
        rng: random.Random | None = None,
        emitter: EngineEventEmitter | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        routing = self._config.routing
        rng = rng or random.Random(routing.seed)

        self._providers = providers
        self._participants = participants
        self._store = store or MemoryStore()
        self._emitter = emitter
        self._adapter = adapter or LiteLLMAdapter(providers)

        self.classifier = TaskClassifier()
        self.selector = RuleSelector(rules, providers)
        self.policy = PolicyStore(
            self._store,
            learning_rate=routing.learning_rate,
            min_samples_for_confidence=routing.min_samples_for_confidence,
        )
        self.resolver = RouteResolver(
            self.selector,
            self.policy,
            providers,
            default_provider=routing.default_provider,
            settings=routing.resolver_settings(),
            rng=rng,
        )
        self.history = RoutingHistory(
            self._store, providers, max_size=routing.history_size,
        )
        self.experiments = ExperimentManager(self._store, rng=rng, emitter=emitter)
        self.orchestrator = ConsensusOrchestrator(
            self._adapter,
            self.resolver,
            participants,
            self._config.consensus,
            classifier=self.classifier,
            emitter=emitter,
        )

    @classmethod
    async def create(
        cls,
        config_dir: Path | None = None,
        *,
        adapter: ProviderAdapter | None = None,
        store: KeyValueStore | None = None,
        rng: random.Random | None = None,
        emitter: EngineEventEmitter | None = None,
    ) -> QuorumService:
        """Load configuration from ``config_dir`` (default: bundled) and hydrate state.

        Raises:
            FileNotFoundError: If a config file is missing.
            ValueError: If a config file is invalid.
        """
        def _path(name: str) -> Path | None:
            return config_dir / name if config_dir else None

        providers = load_providers(_path("providers.toml"))
        rules = load_rules(_path("rules.toml"), providers)
        participants = load_participants(_path("committee.toml"))
        config = load_engine_config(_path("defaults.toml"))

        if store is None:
            if config.storage.backend == StorageBackend.SQLITE:
                store = await SQLiteStore.open(config.storage.db_path)
            else:
                store = MemoryStore()

        service = cls(
            providers=providers,
            rules=rules,
            participants=participants,
            config=config,
            adapter=adapter,
            store=store,
            rng=rng,
            emitter=emitter,
        )
        await service.load()
        return service

    async def load(self) -> None:
        """Hydrate policy, routing history and experiments from storage."""
        await self.policy.load()
        await self.history.load()
        await self.experiments.load()

    async def close(self) -> None:
        await self._store.close()

    # ── Accessors ─────────────────────────────────────────────

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        return dict(self._providers)

    @property
    def participants(self) -> dict[str, Participant]:
        return dict(self._participants)

    # ── Routing ───────────────────────────────────────────────

    async def select_route(
        self,
        task_text: str,
        hints: ClassificationHints | None = None,
        constraints: RouteConstraints | None = None,
        experiment_id: str | None = None,
    ) -> RoutingDecision:
        """Classify the task and resolve a routing decision.

        When ``experiment_id`` names an active experiment, the drawn
        variant's config overrides resolver settings and constraints for
        this call, and the decision records the experiment and variant.
        """
        profile = self.classifier.classify(task_text, hints)
        constraints = constraints or RouteConstraints()
        settings: ResolverSettings | None = None

        variant: Variant | None = None
        if experiment_id is not None:
            variant = await self.experiments.get_variant(experiment_id)
            if variant is not None:
                settings, constraints = self._apply_variant(variant, constraints)

        decision = self.resolver.resolve(profile, constraints, settings)
        if variant is not None:
            decision = decision.model_copy(update={
                "experiment_id": experiment_id,
                "variant_id": variant.variant_id,
            })
        await self.history.record(decision)

        await emit(
            self._emitter, EventType.ROUTE_SELECTED,
            provider=decision.provider,
            domain=decision.domain,
            confidence=decision.confidence,
            exploratory=decision.exploratory,
            is_default=decision.is_default,
        )
        return decision

    def _apply_variant(
        self, variant: Variant, constraints: RouteConstraints,
    ) -> tuple[ResolverSettings | None, RouteConstraints]:
        overrides = {k: v for k, v in variant.config.items() if k in ResolverSettings.model_fields}
        settings = None
        if overrides:
            try:
                settings = ResolverSettings.model_validate(
                    {**self.resolver.settings.model_dump(), **overrides}
                )
            except ValidationError:
                logger.warning(
                    "Ignoring invalid resolver overrides in variant %s", variant.variant_id,
                )

        changes: dict[str, Any] = {}
        if "preferred_providers" in variant.config:
            changes["preferred_providers"] = tuple(variant.config["preferred_providers"])
        if "excluded_providers" in variant.config:
            changes["excluded_providers"] = constraints.excluded_providers | frozenset(
                variant.config["excluded_providers"]
            )
        if changes:
            constraints = constraints.merged(**changes)
        return settings, constraints

    async def execute(
        self,
        task_text: str,
        hints: ClassificationHints | None = None,
        constraints: RouteConstraints | None = None,
        experiment_id: str | None = None,
        options: InvokeOptions | None = None,
    ) -> ExecutionResult:
        """Route the task and invoke the selected provider chain.

        Tries the selected provider, then each alternative in rank order.

        Raises:
            RoutingFailure: If every provider in the chain failed.
        """
        decision = await self.select_route(task_text, hints, constraints, experiment_id)
        chain = [p for p in dict.fromkeys(decision.chain) if p]

        attempted: list[str] = []
        errors: dict[str, str] = {}
        for provider in chain:
            attempted.append(provider)
            result = await invoke_safely(self._adapter, provider, task_text, options)
            if result.success:
                if len(attempted) > 1:
                    logger.info("Failed over to %s after %s", provider, ", ".join(attempted[:-1]))
                return ExecutionResult(
                    decision=decision,
                    provider=provider,
                    result=result,
                    attempted=attempted,
                    errors=errors,
                )
            errors[provider] = f"{result.failure}: {result.error}"
            logger.warning("Provider %s failed: %s", provider, errors[provider])
            await emit(
                self._emitter, EventType.ROUTE_FAILED_OVER,
                provider=provider, error=errors[provider],
            )

        raise RoutingFailure(attempted, errors)

    # ── Feedback ──────────────────────────────────────────────

    async def record_feedback(
        self,
        provider: str,
        domain: TaskDomain | str,
        rating: float,
        helpful: bool,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record an outcome and fold it into the policy.

        Always succeeds: ratings are clamped to [-1, 1], unknown domains
        fall back to general, and storage failures are logged.

        Returns:
            The feedback id.
        """
        metadata = dict(metadata or {})
        try:
            domain = TaskDomain(domain)
        except ValueError:
            logger.warning("Unknown feedback domain '%s'; using general", domain)
            domain = TaskDomain.GENERAL

        entry = FeedbackEntry(
            provider=provider,
            domain=domain,
            rating=max(-1.0, min(1.0, float(rating))),
            helpful=bool(helpful),
            notes=str(metadata.pop("notes", "")),
            latency_ms=_non_negative(metadata.pop("latency_ms", None)),
            cost=_non_negative(metadata.pop("cost", None)),
            metadata=metadata,
        )
        try:
            await self.policy.apply(entry)
        except Exception:
            logger.exception("Failed to apply feedback %s", entry.feedback_id)

        await emit(
            self._emitter, EventType.FEEDBACK_RECORDED,
            feedback_id=entry.feedback_id, provider=provider,
            domain=domain, rating=entry.rating,
        )
        return entry.feedback_id

    async def list_feedback(
        self,
        provider: str | None = None,
        domain: TaskDomain | str | None = None,
        limit: int = 50,
    ) -> list[FeedbackEntry]:
        """Recorded feedback entries, newest first."""
        return await self.policy.list_feedback(provider, domain, limit)

    # ── History ───────────────────────────────────────────────

    def routing_history(self, limit: int = 100) -> list[RoutingDecision]:
        """The most recent routing decisions, oldest first."""
        return self.history.recent(limit)

    def routing_stats(self) -> RoutingStats:
        return self.history.stats()

    # ── Experiments ───────────────────────────────────────────

    async def create_experiment(
        self,
        name: str,
        variants: list[VariantSpec | dict[str, Any]],
        description: str = "",
    ) -> Experiment:
        return await self.experiments.create_experiment(name, variants, description)

    async def get_variant(self, experiment_id: str) -> Variant | None:
        return await self.experiments.get_variant(experiment_id)

    async def record_conversion(
        self, experiment_id: str, variant_id: str, score: float = 1.0,
    ) -> Variant | None:
        return await self.experiments.record_conversion(experiment_id, variant_id, score)

    async def conclude(self, experiment_id: str) -> Experiment:
        return await self.experiments.conclude(experiment_id)

    def list_experiments(self, status: ExperimentStatus | str | None = None) -> list[Experiment]:
        return self.experiments.list_experiments(status)

    # ── Consensus ─────────────────────────────────────────────

    async def start_consensus(
        self,
        task_text: str,
        required_participants: list[str] | None = None,
        optional_participants: list[str] | None = None,
        expected_output: str = "",
        *,
        context: str = "",
        round_timeout: float | None = None,
        session: ConsensusSession | None = None,
    ) -> ConsensusResult:
        """Run a consensus session for a high-stakes task.

        ``round_timeout`` replaces the configured per-round deadline for
        this session. Pass a session from :meth:`new_session` to be able
        to cancel it.
        """
        request = ConsensusRequest(
            task=task_text,
            required_participants=required_participants or [],
            optional_participants=optional_participants or [],
            expected_output=expected_output,
            context=context,
            round_timeout=round_timeout,
        )
        return await self.orchestrator.run(request, session)

    def new_session(self, task_text: str = "") -> ConsensusSession:
        """Create a cancellable session handle for :meth:`start_consensus`."""
        return self.orchestrator.create_session(ConsensusRequest(task=task_text))


def _non_negative(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None
