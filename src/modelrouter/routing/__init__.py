"""Rule-based model routing.

- Deterministic rule scoring (keywords, language, path, size, privacy, mode)
- Tie-breaking by priority, then declaration order
- Per-rule fallback chains, then the profile default
- Hard privacy filter: privacy-strict requests only reach local providers
- Dry-run simulation exposing the ranked alternatives
"""

from modelrouter.routing.privacy import apply_privacy, requires_local
from modelrouter.routing.router import (
    Alternative,
    AvailableModel,
    ModelRouter,
    RouteResult,
    RouteSimulation,
    RoutingError,
    ScoredRule,
)
from modelrouter.routing.scorer import RoutingContext, RuleScorer

__all__ = [
    "Alternative",
    "AvailableModel",
    "ModelRouter",
    "RouteResult",
    "RouteSimulation",
    "RoutingContext",
    "RoutingError",
    "RuleScorer",
    "ScoredRule",
    "apply_privacy",
    "requires_local",
]
