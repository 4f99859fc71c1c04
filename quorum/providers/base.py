"""Abstract provider adapter contract.

The engine reaches backend providers exclusively through this
interface. Adapters own retries and backoff; the engine layer never
retries a call itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod

from quorum.schemas.providers import FailureKind, InvokeOptions, ProviderConfig, ProviderResult

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Uniform async interface over interchangeable backend providers.

    Initialized from the provider registry. ``invoke`` must not raise for
    provider failures: it returns a ProviderResult with ``success=False``
    and a typed failure kind instead.
    """

    def __init__(self, providers: dict[str, ProviderConfig]) -> None:
        self._providers = dict(providers)

    # ── Registry ──────────────────────────────────────────────

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        """Provider id → configuration for every reachable provider."""
        return dict(self._providers)

    def config(self, provider_id: str) -> ProviderConfig | None:
        return self._providers.get(provider_id)

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    async def invoke(
        self,
        provider_id: str,
        content: str,
        options: InvokeOptions | None = None,
    ) -> ProviderResult:
        """Send one request to a provider and return a typed result.

        Args:
            provider_id: Registry key of the target provider.
            content: User message content.
            options: System prompt, sampling and timeout options.

        Returns:
            A ProviderResult. Failures carry ``success=False``.
        """

    def calculate_cost(
        self, provider_id: str, prompt_tokens: int, completion_tokens: int,
    ) -> float:
        """Estimate the USD cost of a call from its token counts."""
        config = self._providers.get(provider_id)
        if config is None:
            return 0.0
        input_cost = (prompt_tokens / 1_000_000) * config.cost_input
        output_cost = (completion_tokens / 1_000_000) * config.cost_output
        return input_cost + output_cost


async def invoke_safely(
    adapter: ProviderAdapter,
    provider_id: str,
    content: str,
    options: InvokeOptions | None = None,
    *,
    timeout: float | None = None,
) -> ProviderResult:
    """Invoke under an optional hard timeout, converting stray exceptions to failures.

    Adapters should not raise, but a misbehaving one must not crash a
    routing chain or a consensus round. Task cancellation still
    propagates.
    """
    options = options or InvokeOptions()
    start = time.monotonic()
    try:
        return await asyncio.wait_for(
            adapter.invoke(provider_id, content, options), timeout=timeout,
        )
    except TimeoutError:
        return ProviderResult.failed(
            provider_id, FailureKind.TIMEOUT,
            f"timed out after {timeout}s",
            (time.monotonic() - start) * 1000,
        )
    except Exception as e:  # noqa: BLE001
        logger.warning("Adapter raised for %s: %s", provider_id, e)
        return ProviderResult.failed(
            provider_id, FailureKind.UNKNOWN, str(e)[:200],
            (time.monotonic() - start) * 1000,
        )
