"""Task routing: rule table, learned policy and the route resolver."""

from quorum.routing.engine import NO_POLICY_JUSTIFICATION, RouteResolver
from quorum.routing.history import RoutingHistory
from quorum.routing.policy import PolicyStore
from quorum.routing.rules import RuleSelector, merge_thresholds, violates

__all__ = [
    "NO_POLICY_JUSTIFICATION",
    "PolicyStore",
    "RouteResolver",
    "RoutingHistory",
    "RuleSelector",
    "merge_thresholds",
    "violates",
]
