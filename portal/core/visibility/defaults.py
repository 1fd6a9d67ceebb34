"""Default-by-type visibility.

Applied only when a resource has no rule at all. The table is a value
passed to the evaluator, so callers and tests can swap in other policies.
"""

from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from portal.common.config import VisibilityConfig, load_visibility_config
from .rules import ResourceType, Role, normalize_resource_type, normalize_role


# Resource type -> roles granted by default; None grants everyone.
DEFAULT_VISIBILITY: Dict[str, Optional[FrozenSet[str]]] = {
    ResourceType.FORM.value: frozenset({"founder", "intern", "volunteer", "teacher"}),
    ResourceType.VOLUNTEER_APPLICATION.value: frozenset({"founder", "intern"}),
    ResourceType.SCHOOL_REQUEST.value: frozenset({"founder", "intern", "outreach"}),
    ResourceType.PRESENTATION.value: frozenset({"founder", "intern", "volunteer", "teacher"}),
    ResourceType.VOLUNTEER_HOURS.value: frozenset({"founder", "intern"}),
    ResourceType.INTERN_PROJECT.value: frozenset({"founder", "intern"}),
    ResourceType.BLOG_POST.value: None,
}

DEFAULT_FALLBACK: FrozenSet[str] = frozenset({Role.FOUNDER.value})


class DefaultVisibility:
    """Maps a resource type and role to the default allow/deny decision."""

    def __init__(
        self,
        table: Optional[Mapping[str, Optional[Iterable[str]]]] = None,
        fallback: Optional[Iterable[str]] = None,
    ):
        source = DEFAULT_VISIBILITY if table is None else table
        self._table: Dict[str, Optional[FrozenSet[str]]] = {
            normalize_resource_type(resource_type): (
                None if roles is None else frozenset(filter(None, map(normalize_role, roles)))
            )
            for resource_type, roles in source.items()
        }
        self._fallback = (
            DEFAULT_FALLBACK
            if fallback is None
            else frozenset(filter(None, map(normalize_role, fallback)))
        )

    @classmethod
    def from_config(cls, config: VisibilityConfig) -> "DefaultVisibility":
        """Built-in table overlaid with the entries from a loaded config."""
        table: Dict[str, Optional[Iterable[str]]] = dict(DEFAULT_VISIBILITY)
        table.update(config.defaults)
        return cls(table, fallback=config.fallback)

    @classmethod
    def from_file(cls, path: str) -> "DefaultVisibility":
        return cls.from_config(load_visibility_config(path))

    def roles_for(self, resource_type: str) -> Optional[FrozenSet[str]]:
        """Roles granted by default for ``resource_type`` (None means everyone)."""
        key = normalize_resource_type(resource_type)
        if key in self._table:
            return self._table[key]
        return self._fallback

    def allows(self, user_role: Optional[str], resource_type: str) -> bool:
        roles = self.roles_for(resource_type)
        if roles is None:
            return True
        role = normalize_role(user_role)
        return role is not None and role in roles


@lru_cache
def load_default_visibility(path: str) -> DefaultVisibility:
    """Load a defaults file once per path; the table is read-only after load."""
    return DefaultVisibility.from_file(path)
