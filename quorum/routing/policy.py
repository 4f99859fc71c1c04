"""Policy store: learned per-(provider, domain) performance records.

Each feedback entry folds into exactly one PolicyState via an
exponential moving average. Updates to the same key are serialized by a
per-key asyncio.Lock; different keys proceed concurrently. Persistence
is best-effort: storage failures are logged and the in-memory state
stays authoritative.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import UTC, datetime

from pydantic import ValidationError

from quorum.schemas.policy import FeedbackEntry, PolicyState, policy_key
from quorum.schemas.routing import RouteConstraints
from quorum.schemas.task import TaskDomain
from quorum.storage.base import FEEDBACK, POLICY, KeyValueStore

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class PolicyStore:
    """In-memory policy table with optional write-through persistence."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        learning_rate: float = 0.1,
        min_samples_for_confidence: int = 10,
    ) -> None:
        self._store = store
        self._alpha = learning_rate
        self._min_samples = max(1, min_samples_for_confidence)
        self._states: dict[str, PolicyState] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> int:
        """Hydrate the table from storage. Returns the number of records loaded."""
        if self._store is None:
            return 0
        try:
            rows = await self._store.scan(POLICY)
        except Exception:
            logger.exception("Failed to load policy records; starting empty")
            return 0

        loaded = 0
        for key, value in rows:
            try:
                self._states[key] = PolicyState.model_validate(value)
                loaded += 1
            except ValidationError:
                logger.warning("Skipping malformed policy record %s", key)
        logger.info("Loaded %d policy records", loaded)
        return loaded

    def get(self, provider: str, domain: TaskDomain | str) -> PolicyState | None:
        return self._states.get(policy_key(provider, domain))

    def states_for(self, domain: TaskDomain | str) -> list[PolicyState]:
        domain = TaskDomain(domain)
        return [s for s in self._states.values() if s.domain == domain]

    def all_states(self) -> list[PolicyState]:
        return sorted(self._states.values(), key=lambda s: (s.domain, s.provider))

    def best_for(
        self,
        domain: TaskDomain | str,
        constraints: RouteConstraints | None = None,
    ) -> list[PolicyState]:
        """Records for a domain, best score first.

        Honours the constraint exclusions and confidence floor.
        """
        constraints = constraints or RouteConstraints()
        states = [
            s for s in self.states_for(domain)
            if s.provider not in constraints.excluded_providers
            and s.confidence >= constraints.min_confidence
        ]
        return sorted(states, key=lambda s: (-s.score, s.provider))

    async def update(
        self,
        provider: str,
        domain: TaskDomain | str,
        rating: float,
        helpful: bool,
        latency_ms: float | None = None,
        cost: float | None = None,
    ) -> PolicyState:
        """Fold one outcome into the (provider, domain) record.

        ``score ← score·(1−α) + ((rating+1)/2)·α``. New keys start at 0.5.
        Confidence reaches 1.0 at ``min_samples_for_confidence`` samples.
        """
        domain = TaskDomain(domain)
        key = policy_key(provider, domain)
        rating = _clamp(rating, -1.0, 1.0)

        async with self._locks[key]:
            current = self._states.get(key) or PolicyState(provider=provider, domain=domain)
            samples = current.sample_count + 1
            normalized = (rating + 1.0) / 2.0

            changes: dict[str, object] = {
                "score": _clamp(
                    current.score * (1 - self._alpha) + normalized * self._alpha, 0.0, 1.0,
                ),
                "success_rate": (
                    current.success_rate * current.sample_count + (1.0 if helpful else 0.0)
                ) / samples,
                "sample_count": samples,
                "confidence": min(1.0, samples / self._min_samples),
                "updated_at": datetime.now(UTC),
            }
            if latency_ms is not None:
                n = current.latency_samples + 1
                changes["avg_latency_ms"] = (
                    current.avg_latency_ms * current.latency_samples + latency_ms
                ) / n
                changes["latency_samples"] = n
            if cost is not None:
                n = current.cost_samples + 1
                changes["avg_cost"] = (current.avg_cost * current.cost_samples + cost) / n
                changes["cost_samples"] = n

            updated = current.model_copy(update=changes)
            self._states[key] = updated
            await self._persist(POLICY, key, updated.model_dump(mode="json"))

        logger.debug(
            "Policy %s: score=%.3f confidence=%.2f samples=%d",
            key, updated.score, updated.confidence, updated.sample_count,
        )
        return updated

    async def apply(self, entry: FeedbackEntry) -> PolicyState:
        """Persist a feedback entry and fold it into its policy record."""
        await self._persist(FEEDBACK, entry.feedback_id, entry.model_dump(mode="json"))
        return await self.update(
            entry.provider,
            entry.domain,
            entry.rating,
            entry.helpful,
            latency_ms=entry.latency_ms,
            cost=entry.cost,
        )

    async def list_feedback(
        self,
        provider: str | None = None,
        domain: TaskDomain | str | None = None,
        limit: int = 50,
    ) -> list[FeedbackEntry]:
        """Return persisted feedback entries, newest first.

        Without a backing store there is no audit log and the result is
        empty.
        """
        if self._store is None:
            return []
        domain = TaskDomain(domain) if domain is not None else None

        entries: list[FeedbackEntry] = []
        for key, value in await self._store.scan(FEEDBACK):
            try:
                entry = FeedbackEntry.model_validate(value)
            except ValidationError:
                logger.warning("Skipping malformed feedback record %s", key)
                continue
            if provider is not None and entry.provider != provider:
                continue
            if domain is not None and entry.domain != domain:
                continue
            entries.append(entry)

        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:max(0, limit)]

    async def _persist(self, namespace: str, key: str, value: dict) -> None:
        if self._store is None:
            return
        try:
            await self._store.put(namespace, key, value)
        except Exception:
            logger.warning("Failed to persist %s record %s", namespace, key, exc_info=True)
