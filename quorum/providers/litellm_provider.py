"""LiteLLM adapter implementing the ProviderAdapter contract.

Routes every provider call through ``litellm.acompletion()``. Handles
API key resolution, token and cost accounting, timeouts, and retry
with exponential backoff for transient failures. Errors are mapped to
typed failure results rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from quorum.providers.base import ProviderAdapter  # noqa: E402
from quorum.schemas.providers import (  # noqa: E402
    FailureKind,
    InvokeOptions,
    ProviderConfig,
    ProviderResult,
)

logger = logging.getLogger(__name__)

# Max attempts for transient failures
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds

_TRANSIENT_ERRORS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
)


def _short_error_reason(error: BaseException) -> str:
    """Map a LiteLLM error to a short description."""
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


class LiteLLMAdapter(ProviderAdapter):
    """Provider adapter powered by LiteLLM.

    One adapter serves every provider in the registry; ``provider_id``
    selects the model, key and API base for each call.
    """

    def __init__(
        self,
        providers: dict[str, ProviderConfig],
        *,
        max_retries: int = _MAX_RETRIES,
        base_backoff: float = _BASE_BACKOFF,
    ) -> None:
        super().__init__(providers)
        self._max_retries = max(1, max_retries)
        self._base_backoff = base_backoff

    async def invoke(
        self,
        provider_id: str,
        content: str,
        options: InvokeOptions | None = None,
    ) -> ProviderResult:
        """Call a provider through LiteLLM and return a typed result."""
        options = options or InvokeOptions()
        config = self._providers.get(provider_id)
        if config is None:
            return ProviderResult.failed(
                provider_id, FailureKind.BAD_REQUEST,
                f"Unknown provider '{provider_id}'",
            )

        kwargs = self._build_completion_kwargs(config, content, options)
        start = time.monotonic()
        response, failure, error = await self._call_with_retry(config, kwargs)
        latency_ms = (time.monotonic() - start) * 1000

        if failure is not None:
            logger.warning(
                "Provider %s failed (%s): %s", provider_id, failure, error,
            )
            return ProviderResult.failed(provider_id, failure, error, latency_ms)

        prompt_tokens, completion_tokens = self._token_counts(response)
        return ProviderResult(
            provider_id=provider_id,
            content=self._extract_content(response),
            units=prompt_tokens + completion_tokens,
            cost=self.calculate_cost(provider_id, prompt_tokens, completion_tokens),
            latency_ms=latency_ms,
        )

    def _build_completion_kwargs(
        self,
        config: ProviderConfig,
        content: str,
        options: InvokeOptions,
    ) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        messages = []
        if options.system:
            messages.append({"role": "system", "content": options.system})
        messages.append({"role": "user", "content": content})

        kwargs: dict = {
            "model": config.model,
            "messages": messages,
            "timeout": float(options.timeout),
        }
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens

        api_key = os.environ.get(config.api_key_env, "") if config.api_key_env else ""
        if api_key:
            kwargs["api_key"] = api_key
        if config.api_base:
            kwargs["api_base"] = config.api_base
        return kwargs

    async def _call_with_retry(
        self, config: ProviderConfig, kwargs: dict,
    ) -> tuple[litellm.ModelResponse | None, FailureKind | None, str]:
        """Call litellm.acompletion with exponential backoff.

        Transient errors and timeouts are retried; auth and bad-request
        errors fail immediately. Returns ``(response, None, "")`` on
        success or ``(None, kind, reason)`` once retries are exhausted.
        """
        last_kind = FailureKind.UNKNOWN
        last_reason = ""

        for attempt in range(self._max_retries):
            try:
                response = await litellm.acompletion(**kwargs)
                return response, None, ""
            except TimeoutError:
                last_kind = FailureKind.TIMEOUT
                last_reason = (
                    f"timed out after {kwargs.get('timeout')}s "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
            except litellm.Timeout as e:
                last_kind = FailureKind.TIMEOUT
                last_reason = _short_error_reason(e)
            except litellm.AuthenticationError:
                return None, FailureKind.AUTH, (
                    f"Authentication failed for {config.model}. "
                    f"Check that {config.api_key_env} is set correctly."
                )
            except litellm.BadRequestError as e:
                return None, FailureKind.BAD_REQUEST, f"Bad request to {config.model}: {e}"
            except _TRANSIENT_ERRORS as e:
                last_kind = FailureKind.UNAVAILABLE
                last_reason = _short_error_reason(e)
            except Exception as e:  # noqa: BLE001
                return None, FailureKind.UNKNOWN, _short_error_reason(e)

            if attempt < self._max_retries - 1:
                backoff = self._base_backoff * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1,
                    self._max_retries,
                    config.display_name,
                    last_reason,
                    backoff,
                )
                await asyncio.sleep(backoff)

        return None, last_kind, last_reason

    def _extract_content(self, response: litellm.ModelResponse) -> str:
        if not response.choices:
            return ""
        message = response.choices[0].message
        return message.content or "" if message else ""

    def _token_counts(self, response: litellm.ModelResponse) -> tuple[int, int]:
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return prompt_tokens, completion_tokens
