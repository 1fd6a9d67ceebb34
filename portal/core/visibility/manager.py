"""Visibility manager for the coordination portal.

Provides the high-level API the rest of the application calls: checking
whether a user can view a resource, setting, copying and bulk-updating
visibility, listing visible resources, and managing viewer approvals.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from portal.common.logger import get_logger
from portal.core.config import get_settings
from .adapters import ResourceAdapterRegistry
from .defaults import DefaultVisibility, load_default_visibility
from .evaluator import VisibilityDecision, VisibilityEvaluator, utc_now
from .rules import (
    PUBLIC_ROLE,
    VisibilityRule,
    check_visibility_roles,
    normalize_resource_type,
    normalize_visibility_roles,
)
from .store import VisibilityError, VisibilityStore

logger = get_logger("manager")


@dataclass
class VisibilityUpdate:
    """One entry of a bulk visibility update."""
    resource_type: str
    resource_id: str
    allowed_roles: List[str] = field(default_factory=list)
    allowed_users: Optional[List[str]] = None
    is_public: Optional[bool] = None
    restrictions: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VisibilityUpdate":
        """Create an update from a mapping; options may be nested under ``options``."""
        options = data.get("options") or {}

        def pick(*keys: str) -> Any:
            for source in (data, options):
                for key in keys:
                    if source.get(key) is not None:
                        return source[key]
            return None

        resource_type = pick("resource_type", "resourceType")
        resource_id = pick("resource_id", "resourceId")
        if not resource_type or resource_id is None:
            raise ValueError("Visibility update requires resource_type and resource_id")

        return cls(
            resource_type=str(resource_type),
            resource_id=str(resource_id),
            allowed_roles=list(pick("allowed_roles", "allowedRoles") or []),
            allowed_users=pick("allowed_users", "allowedUsers"),
            is_public=pick("is_public", "isPublic"),
            restrictions=pick("restrictions"),
        )


@dataclass
class BulkUpdateResult:
    """Per-entry outcome of a bulk visibility update."""
    resource_type: str
    resource_id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class VisibilityStats:
    total_resources: int = 0
    public_resources: int = 0
    restricted_resources: int = 0
    resources_by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_resources": self.total_resources,
            "public_resources": self.public_resources,
            "restricted_resources": self.restricted_resources,
            "resources_by_type": dict(self.resources_by_type),
        }


class VisibilityManager:
    """
    High-level service for resource visibility.

    Handles:
    - Single-resource view checks (strict rule evaluation)
    - Setting, copying and bulk-updating visibility
    - Listing resources visible to a user (loose role check by default)
    - Viewer approvals for rules that require approval
    - Visibility statistics
    """

    def __init__(
        self,
        db: Session,
        *,
        defaults: Optional[DefaultVisibility] = None,
        registry: Optional[ResourceAdapterRegistry] = None,
        rules_table_enabled: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the visibility manager.

        Args:
            db: Database session
            defaults: Default-by-type table (built-in table if omitted)
            registry: Resource adapter registry (global registry if omitted)
            rules_table_enabled: Use the dedicated visibility_rules table
            clock: Returns the current, timezone-aware time
        """
        self.db = db
        self.store = VisibilityStore(
            db, registry=registry, rules_table_enabled=rules_table_enabled
        )
        self.evaluator = VisibilityEvaluator(self.store, defaults, clock=clock)

    @property
    def registry(self) -> ResourceAdapterRegistry:
        return self.store.registry

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def can_user_view(self, user_id: str, resource_type: str, resource_id: str) -> bool:
        """Check if a user can view a specific resource."""
        return self.evaluator.can_user_view(user_id, resource_type, resource_id)

    def explain(self, user_id: str, resource_type: str, resource_id: str) -> VisibilityDecision:
        """Like ``can_user_view`` but returns the full decision."""
        return self.evaluator.decide(user_id, resource_type, resource_id)

    def get_visibility_rules(self, resource_type: str, resource_id: str) -> List[VisibilityRule]:
        return self.store.read_rules(resource_type, resource_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_visibility(
        self,
        resource_type: str,
        resource_id: str,
        allowed_roles: Iterable[Any],
        *,
        allowed_users: Optional[Iterable[str]] = None,
        is_public: Optional[bool] = None,
        restrictions: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Set visibility rules for a resource.

        Raises:
            VisibilityWriteError: If the rule cannot be persisted
        """
        roles = normalize_visibility_roles(allowed_roles)
        if PUBLIC_ROLE in roles:
            is_public = True

        rule = VisibilityRule.build(
            resource_type,
            resource_id,
            roles,
            allowed_users=allowed_users,
            is_public=is_public,
            restrictions=restrictions,
        )
        self.store.write_rule(rule)
        logger.info(
            f"Visibility set for {rule.resource_type}/{rule.resource_id}: "
            f"roles={list(rule.allowed_roles)} public={bool(rule.is_public)}"
        )

    def bulk_update_visibility(
        self, entries: Iterable[Union[VisibilityUpdate, Mapping[str, Any]]]
    ) -> List[BulkUpdateResult]:
        """
        Apply ``set_visibility`` to every entry.

        Each entry runs in its own savepoint, so a failing entry is rolled
        back alone and the others still apply. Nothing is atomic across
        entries.

        Returns:
            One BulkUpdateResult per entry, in input order
        """
        results: List[BulkUpdateResult] = []
        for entry in entries:
            try:
                update = entry if isinstance(entry, VisibilityUpdate) else VisibilityUpdate.from_dict(entry)
            except (AttributeError, TypeError, ValueError) as exc:
                results.append(BulkUpdateResult(
                    resource_type=_describe(entry, "resource_type", "resourceType"),
                    resource_id=_describe(entry, "resource_id", "resourceId"),
                    success=False,
                    error=f"Invalid entry: {exc}",
                ))
                continue

            try:
                with self.db.begin_nested():
                    self.set_visibility(
                        update.resource_type,
                        update.resource_id,
                        update.allowed_roles,
                        allowed_users=update.allowed_users,
                        is_public=update.is_public,
                        restrictions=update.restrictions,
                    )
            except (VisibilityError, TypeError, ValueError) as exc:
                logger.warning(
                    f"Bulk visibility update failed for "
                    f"{update.resource_type}/{update.resource_id}: {exc}"
                )
                results.append(BulkUpdateResult(
                    resource_type=normalize_resource_type(update.resource_type),
                    resource_id=update.resource_id,
                    success=False,
                    error=str(exc),
                ))
                continue

            results.append(BulkUpdateResult(
                resource_type=normalize_resource_type(update.resource_type),
                resource_id=update.resource_id,
                success=True,
            ))

        failed = sum(1 for result in results if not result.success)
        if failed:
            logger.warning(f"Bulk visibility update: {failed} of {len(results)} entries failed")
        return results

    def copy_visibility_settings(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_id: str,
    ) -> None:
        """Copy the first rule of the source resource onto the target; no-op without one."""
        source_rules = self.store.read_rules(source_type, source_id)
        if not source_rules:
            logger.debug(f"No visibility to copy from {source_type}/{source_id}")
            return

        rule = source_rules[0]
        self.set_visibility(
            target_type,
            target_id,
            list(rule.allowed_roles),
            allowed_users=rule.allowed_users,
            is_public=rule.is_public,
            restrictions=rule.restrictions.to_dict() if rule.restrictions else None,
        )

    # ------------------------------------------------------------------
    # Listing and stats
    # ------------------------------------------------------------------

    def get_visible_resources(
        self, user_id: str, resource_type: str, *, strict: bool = False
    ) -> List[str]:
        """
        Get ids of all resources of a type that a user can see.

        Only enumerable resource types are supported; others return an
        empty list. Rows without an embedded visibility column are never
        listed.

        By default the loose role check applies: public, a role match, or
        a founder/admin principal. It ignores allowed users, exclusions,
        approvals and time windows, so it can disagree with
        ``can_user_view``. ``strict=True`` re-checks each listed row with
        the full evaluator instead.
        """
        user_role = self.store.get_user_role(user_id)
        if user_role is None:
            return []

        adapter = self.registry.get_adapter(resource_type)
        if adapter is None or not adapter.enumerable:
            logger.debug(f"Listing not supported for resource type {resource_type}")
            return []

        rows = self.store.read_all_with_visibility(adapter.resource_type)
        if strict:
            return [
                row.resource_id
                for row in rows
                if self.evaluator.can_user_view(user_id, adapter.resource_type, row.resource_id)
            ]
        return [
            row.resource_id
            for row in rows
            if check_visibility_roles(row.allowed_roles, user_role)
        ]

    def get_visibility_stats(self) -> VisibilityStats:
        """Count resources with an embedded visibility column, by type."""
        stats = VisibilityStats()
        for resource_type in self.registry.list_resource_types():
            rows = self.store.read_all_with_visibility(resource_type)
            stats.resources_by_type[resource_type] = len(rows)
            for row in rows:
                stats.total_resources += 1
                if PUBLIC_ROLE in row.allowed_roles:
                    stats.public_resources += 1
                else:
                    stats.restricted_resources += 1
        return stats

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def approve_viewer(
        self,
        resource_type: str,
        resource_id: str,
        user_id: str,
        approved_by: Optional[str] = None,
    ) -> None:
        """Approve a user for a resource whose rule requires approval."""
        self.store.save_approval(resource_type, resource_id, user_id, approved_by)
        logger.info(f"Approved user {user_id} for {resource_type}/{resource_id}")

    def revoke_approval(self, resource_type: str, resource_id: str, user_id: str) -> bool:
        """Revoke a viewer approval; returns True if one existed."""
        removed = self.store.delete_approval(resource_type, resource_id, user_id)
        if removed:
            logger.info(f"Revoked approval of user {user_id} for {resource_type}/{resource_id}")
        return removed > 0


def _describe(entry: Any, *keys: str) -> str:
    if isinstance(entry, Mapping):
        for key in keys:
            if entry.get(key) is not None:
                return str(entry[key])
    return ""


def get_visibility_manager(db: Session, settings=None) -> VisibilityManager:
    """
    Build a manager wired from application settings.

    Args:
        db: Database session
        settings: Settings instance (process settings if omitted)
    """
    settings = settings or get_settings()
    defaults = None
    if settings.visibility_defaults_file:
        defaults = load_default_visibility(settings.visibility_defaults_file)
    return VisibilityManager(
        db,
        defaults=defaults,
        rules_table_enabled=settings.visibility_rules_table_enabled,
    )
