"""Experiment manager: weighted A/B tests over variant configurations.

Variant draws and conversions mutate per-variant counters under a
per-experiment asyncio.Lock, so concurrent callers never lose an
increment. Persistence is best-effort write-through: storage failures
are logged and the in-memory experiment stays authoritative.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from quorum.events import EngineEventEmitter, EventType, emit
from quorum.schemas.experiment import (
    Experiment,
    ExperimentStatus,
    Variant,
    VariantResult,
    VariantSpec,
)
from quorum.storage.base import EXPERIMENTS, KeyValueStore

logger = logging.getLogger(__name__)

# Allowed deviation of the weight sum from 1.0
_WEIGHT_TOLERANCE = 1e-6


def build_variants(specs: list[VariantSpec | dict[str, Any]]) -> list[Variant]:
    """Validate variant specs and assign weights.

    Weights must either all be given and sum to 1.0, or all be omitted,
    in which case traffic is split evenly.

    Raises:
        ValueError: On an empty list, duplicate ids, mixed omission, or a
            weight sum other than 1.0.
    """
    parsed = [s if isinstance(s, VariantSpec) else VariantSpec(**s) for s in specs]
    if not parsed:
        raise ValueError("An experiment needs at least one variant")

    ids = [s.variant_id or s.name for s in parsed]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate variant ids: {ids}")

    given = [s.weight for s in parsed if s.weight is not None]
    if not given:
        weights = [1.0 / len(parsed)] * len(parsed)
    elif len(given) != len(parsed):
        raise ValueError("Either every variant declares a weight or none does")
    else:
        total = math.fsum(given)
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"Variant weights must sum to 1.0, got {total:.6f}")
        weights = given

    return [
        Variant(variant_id=vid, name=s.name, weight=w, config=dict(s.config))
        for vid, s, w in zip(ids, parsed, weights, strict=True)
    ]


class ExperimentManager:
    """Create, draw from, and conclude A/B experiments.

    The RNG is injected so draws are reproducible under a seed.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        rng: random.Random | None = None,
        emitter: EngineEventEmitter | None = None,
    ) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._emitter = emitter
        self._experiments: dict[str, Experiment] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> int:
        """Hydrate experiments from storage. Returns the number loaded."""
        if self._store is None:
            return 0
        try:
            rows = await self._store.scan(EXPERIMENTS)
        except Exception:
            logger.exception("Failed to load experiments; starting empty")
            return 0

        loaded = 0
        for key, value in rows:
            try:
                self._experiments[key] = Experiment.model_validate(value)
                loaded += 1
            except ValidationError:
                logger.warning("Skipping malformed experiment record %s", key)
        return loaded

    # ── Queries ───────────────────────────────────────────────

    def get(self, experiment_id: str) -> Experiment | None:
        return self._experiments.get(experiment_id)

    def list_experiments(self, status: ExperimentStatus | str | None = None) -> list[Experiment]:
        """Experiments in creation order, optionally filtered by status."""
        items = sorted(self._experiments.values(), key=lambda e: e.created_at)
        if status is None:
            return items
        status = ExperimentStatus(status)
        return [e for e in items if e.status == status]

    def results(self, experiment_id: str) -> list[VariantResult]:
        """Per-variant statistics in declaration order."""
        experiment = self._require(experiment_id)
        return [
            VariantResult(
                variant_id=v.variant_id,
                name=v.name,
                weight=v.weight,
                impressions=v.impressions,
                conversions=v.conversions,
                conversion_rate=v.conversion_rate,
                avg_score=v.avg_score,
                combined_score=v.combined_score,
            )
            for v in experiment.variants
        ]

    # ── Lifecycle ─────────────────────────────────────────────

    async def create_experiment(
        self,
        name: str,
        variants: list[VariantSpec | dict[str, Any]],
        description: str = "",
    ) -> Experiment:
        """Create an active experiment.

        Raises:
            ValueError: If the variant weights are invalid.
        """
        experiment = Experiment(
            name=name,
            description=description,
            variants=build_variants(variants),
        )
        self._experiments[experiment.experiment_id] = experiment
        await self._persist(experiment)
        logger.info(
            "Created experiment '%s' (%s) with %d variants",
            name, experiment.experiment_id, len(experiment.variants),
        )
        await emit(
            self._emitter, EventType.EXPERIMENT_CREATED,
            experiment_id=experiment.experiment_id, name=name,
        )
        return experiment

    async def get_variant(self, experiment_id: str) -> Variant | None:
        """Draw a variant by weight and count the impression.

        Returns:
            The drawn variant, or None when the experiment is unknown or
            not active.
        """
        if experiment_id not in self._experiments:
            return None
        async with self._locks[experiment_id]:
            experiment = self._experiments[experiment_id]
            if experiment.status != ExperimentStatus.ACTIVE:
                return None

            variant = self._draw(experiment.variants)
            variant.impressions += 1
            await self._persist(experiment)
            return variant.model_copy()

    async def record_conversion(
        self, experiment_id: str, variant_id: str, score: float = 1.0,
    ) -> Variant | None:
        """Count a conversion and fold ``score`` into the running average.

        Conversions against a completed experiment are ignored.

        Raises:
            KeyError: If the experiment or variant does not exist.
        """
        async with self._lock(experiment_id):
            experiment = self._require(experiment_id)
            variant = experiment.variant(variant_id)
            if variant is None:
                raise KeyError(f"Unknown variant '{variant_id}' in {experiment_id}")
            if experiment.status == ExperimentStatus.COMPLETED:
                logger.warning(
                    "Ignoring conversion for completed experiment %s", experiment_id,
                )
                return None

            variant.conversions += 1
            variant.avg_score += (score - variant.avg_score) / variant.conversions
            await self._persist(experiment)
            return variant.model_copy()

    async def pause(self, experiment_id: str) -> Experiment:
        return await self._set_status(experiment_id, ExperimentStatus.PAUSED)

    async def resume(self, experiment_id: str) -> Experiment:
        return await self._set_status(experiment_id, ExperimentStatus.ACTIVE)

    async def conclude(self, experiment_id: str) -> Experiment:
        """Complete the experiment and pick the winner.

        The winner has the highest ``0.6·conversion_rate + 0.4·avg_score``;
        ties go to the first-declared variant. Concluding twice returns
        the already-completed experiment unchanged.

        Raises:
            KeyError: If the experiment does not exist.
        """
        async with self._lock(experiment_id):
            experiment = self._require(experiment_id)
            if experiment.status == ExperimentStatus.COMPLETED:
                return experiment

            winner = experiment.variants[0]
            for v in experiment.variants[1:]:
                if v.combined_score > winner.combined_score:
                    winner = v

            experiment.status = ExperimentStatus.COMPLETED
            experiment.winner_id = winner.variant_id
            experiment.completed_at = datetime.now(UTC)
            await self._persist(experiment)

        logger.info(
            "Concluded experiment %s: winner %s (score: %.3f)",
            experiment_id, winner.variant_id, winner.combined_score,
        )
        await emit(
            self._emitter, EventType.EXPERIMENT_CONCLUDED,
            experiment_id=experiment_id, winner_id=winner.variant_id,
        )
        return experiment

    # ── Internals ─────────────────────────────────────────────

    def _require(self, experiment_id: str) -> Experiment:
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise KeyError(f"Unknown experiment '{experiment_id}'")
        return experiment

    def _lock(self, experiment_id: str) -> asyncio.Lock:
        # Locks exist only for known experiments
        self._require(experiment_id)
        return self._locks[experiment_id]

    def _draw(self, variants: list[Variant]) -> Variant:
        """Cumulative weighted draw."""
        r = self._rng.random()
        cumulative = 0.0
        for v in variants:
            cumulative += v.weight
            if r < cumulative:
                return v
        # Rounding can leave r just above the final cumulative sum
        return next(v for v in reversed(variants) if v.weight > 0)

    async def _set_status(self, experiment_id: str, status: ExperimentStatus) -> Experiment:
        async with self._lock(experiment_id):
            experiment = self._require(experiment_id)
            if experiment.status == ExperimentStatus.COMPLETED:
                raise ValueError(f"Experiment {experiment_id} is already completed")
            experiment.status = status
            await self._persist(experiment)
            return experiment

    async def _persist(self, experiment: Experiment) -> None:
        if self._store is None:
            return
        try:
            await self._store.put(
                EXPERIMENTS, experiment.experiment_id, experiment.model_dump(mode="json"),
            )
        except Exception:
            logger.warning(
                "Failed to persist experiment %s", experiment.experiment_id, exc_info=True,
            )
