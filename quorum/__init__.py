"""Quorum: adaptive task routing and multi-participant consensus."""

__version__ = "0.1.0"

from .errors import ConfigError, NoProviderAvailable, QuorumError, RoutingFailure
from .service import QuorumService

__all__ = [
    "ConfigError",
    "NoProviderAvailable",
    "QuorumError",
    "QuorumService",
    "RoutingFailure",
]
