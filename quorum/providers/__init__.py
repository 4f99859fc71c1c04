"""Quorum provider layer.

Backend providers are reached only through the ProviderAdapter
interface. The bundled implementation routes every call via LiteLLM.
"""

from quorum.providers.base import ProviderAdapter, invoke_safely
from quorum.providers.litellm_provider import LiteLLMAdapter
from quorum.providers.registry import (
    load_engine_config,
    load_participants,
    load_providers,
    load_rules,
)

__all__ = [
    "LiteLLMAdapter",
    "ProviderAdapter",
    "invoke_safely",
    "load_engine_config",
    "load_participants",
    "load_providers",
    "load_rules",
]
