"""Role-based visibility for portal resources.

Decides, per resource, whether a user may view it from explicit rules,
embedded visibility columns and per-type defaults.
"""

from .rules import (
    PUBLIC_ROLE,
    ResourceType,
    Restrictions,
    Role,
    TimeWindow,
    VisibilityRule,
    check_visibility_roles,
    evaluate_visibility_rule,
    normalize_visibility_roles,
)
from .defaults import DEFAULT_VISIBILITY, DefaultVisibility, load_default_visibility
from .adapters import (
    ModelResourceAdapter,
    ResourceAdapter,
    ResourceAdapterRegistry,
    build_default_registry,
    get_registry,
)
from .store import VisibilityError, VisibilityStore, VisibilityWriteError
from .evaluator import DecisionSource, VisibilityDecision, VisibilityEvaluator
from .manager import (
    BulkUpdateResult,
    VisibilityManager,
    VisibilityStats,
    VisibilityUpdate,
    get_visibility_manager,
)

__all__ = [
    "PUBLIC_ROLE",
    "ResourceType",
    "Restrictions",
    "Role",
    "TimeWindow",
    "VisibilityRule",
    "check_visibility_roles",
    "evaluate_visibility_rule",
    "normalize_visibility_roles",
    "DEFAULT_VISIBILITY",
    "DefaultVisibility",
    "load_default_visibility",
    "ModelResourceAdapter",
    "ResourceAdapter",
    "ResourceAdapterRegistry",
    "build_default_registry",
    "get_registry",
    "VisibilityError",
    "VisibilityStore",
    "VisibilityWriteError",
    "DecisionSource",
    "VisibilityDecision",
    "VisibilityEvaluator",
    "BulkUpdateResult",
    "VisibilityManager",
    "VisibilityStats",
    "VisibilityUpdate",
    "get_visibility_manager",
]
