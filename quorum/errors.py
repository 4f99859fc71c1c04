"""Exceptions raised across the engine.

Classifier misses and rule-table misses are not errors and never raise.
Provider failures travel as failed ProviderResult values; only the cases
below surface to callers.
"""

from __future__ import annotations


class QuorumError(RuntimeError):
    """Base class for engine errors."""


class RoutingFailure(QuorumError):
    """Every provider in a routing chain failed.

    Carries the attempted providers in order and the last error text
    reported by each.
    """

    def __init__(self, attempted: list[str], errors: dict[str, str] | None = None) -> None:
        self.attempted = list(attempted)
        self.errors = dict(errors or {})
        chain = " → ".join(self.attempted) or "(none)"
        super().__init__(f"All providers failed: {chain}")


class NoProviderAvailable(QuorumError):
    """A consensus session aborted and the direct fallback also failed."""

    def __init__(self, session_id: str, reason: str = "") -> None:
        self.session_id = session_id
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"No provider available for session {session_id}{detail}")


class ConfigError(QuorumError, ValueError):
    """A configuration file failed load-time validation."""
