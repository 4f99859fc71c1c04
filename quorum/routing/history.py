"""Recent routing decisions and the usage statistics derived from them.

The history is a bounded window: the oldest decision falls out once
``max_size`` is reached. Decisions are written through to storage under
time-ordered keys so a later process can hydrate the same window.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter, deque

from pydantic import ValidationError

from quorum.schemas.providers import ProviderConfig
from quorum.schemas.routing import ProviderUsage, RoutingDecision, RoutingStats
from quorum.storage.base import ROUTES, KeyValueStore

logger = logging.getLogger(__name__)


_sequence = itertools.count()


def _record_key(decision: RoutingDecision) -> str:
    # Sorts chronologically under the store's key ordering
    stamp = decision.decided_at.strftime("%Y%m%dT%H%M%S%f")
    return f"{stamp}-{next(_sequence):08d}"


class RoutingHistory:
    """Bounded log of routing decisions."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        providers: dict[str, ProviderConfig] | None = None,
        *,
        max_size: int = 1000,
    ) -> None:
        self._store = store
        self._providers = providers or {}
        self._decisions: deque[RoutingDecision] = deque(maxlen=max(1, max_size))

    def __len__(self) -> int:
        return len(self._decisions)

    async def load(self) -> int:
        """Hydrate the newest ``max_size`` decisions from storage."""
        if self._store is None:
            return 0
        try:
            rows = await self._store.scan(ROUTES)
        except Exception:
            logger.exception("Failed to load routing history; starting empty")
            return 0

        for key, value in rows[-self._decisions.maxlen:]:
            try:
                self._decisions.append(RoutingDecision.model_validate(value))
            except ValidationError:
                logger.warning("Skipping malformed routing record %s", key)
        logger.info("Loaded %d routing decisions", len(self._decisions))
        return len(self._decisions)

    async def record(self, decision: RoutingDecision) -> None:
        self._decisions.append(decision)
        if self._store is None:
            return
        key = _record_key(decision)
        try:
            await self._store.put(ROUTES, key, decision.model_dump(mode="json"))
        except Exception:
            logger.warning("Failed to persist routing record %s", key, exc_info=True)

    def recent(self, limit: int = 100) -> list[RoutingDecision]:
        """The last ``limit`` decisions, oldest first."""
        if limit <= 0:
            return []
        return list(self._decisions)[-limit:]

    def stats(self) -> RoutingStats:
        """Aggregate the window into per-provider usage.

        Estimated cost and latency come from the selected provider's
        benchmark record; providers no longer registered contribute 0.
        """
        decisions = list(self._decisions)
        total = len(decisions)
        if not total:
            return RoutingStats(total_decisions=0)

        counts: Counter[str] = Counter()
        confidence: Counter[str] = Counter()
        exploratory: Counter[str] = Counter()
        defaults: Counter[str] = Counter()
        cost = latency = 0.0
        for d in decisions:
            counts[d.provider] += 1
            confidence[d.provider] += d.confidence
            exploratory[d.provider] += d.exploratory
            defaults[d.provider] += d.is_default
            config = self._providers.get(d.provider)
            if config is not None:
                cost += config.benchmark.cost
                latency += config.benchmark.latency_ms

        # most_common keeps first-seen order among equal counts
        usage = tuple(
            ProviderUsage(
                provider=provider,
                selections=n,
                avg_confidence=min(1.0, confidence[provider] / n),
                exploratory=exploratory[provider],
                defaults=defaults[provider],
            )
            for provider, n in counts.most_common()
        )
        return RoutingStats(
            total_decisions=total,
            avg_confidence=min(1.0, sum(d.confidence for d in decisions) / total),
            avg_estimated_cost=cost / total,
            avg_estimated_latency_ms=latency / total,
            exploration_rate=sum(exploratory.values()) / total,
            default_rate=sum(defaults.values()) / total,
            providers=usage,
        )
