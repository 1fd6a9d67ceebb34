"""Policy store accessor for visibility rules.

Reads and writes visibility declarations in either of two shapes: a
dedicated ``visibility_rules`` table keyed by (resource_type,
resource_id), or the embedded visibility column on the resource's own
row. Reads fail closed: database errors are logged and produce an empty
result. Writes raise ``VisibilityWriteError``.
"""

from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.common.logger import get_logger
from .adapters import EmbeddedVisibility, ResourceAdapterRegistry, get_registry
from .rules import VisibilityRule, normalize_resource_type

logger = get_logger("store")


class VisibilityError(Exception):
    """Base class for visibility core errors."""


class VisibilityWriteError(VisibilityError):
    """Raised when persisting a rule or approval fails."""

    def __init__(self, message: str, resource_type: str, resource_id: str):
        super().__init__(message)
        self.resource_type = resource_type
        self.resource_id = resource_id


class VisibilityStore:
    """
    Translates resource references into storage reads and writes.

    Lookup order for rules: the dedicated table first (when enabled),
    then the resource's embedded column.
    """

    def __init__(
        self,
        db: Session,
        *,
        registry: Optional[ResourceAdapterRegistry] = None,
        rules_table_enabled: bool = True,
    ):
        """
        Initialize the store.

        Args:
            db: Database session
            registry: Resource adapter registry (global registry if omitted)
            rules_table_enabled: Use the dedicated visibility_rules table
        """
        self.db = db
        self.registry = registry or get_registry()
        self.rules_table_enabled = rules_table_enabled

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------

    def get_user_role(self, user_id: str) -> Optional[str]:
        """Return the user's role, or None if the user is unknown or lookup fails."""
        from portal.db.models.user import User

        try:
            row = self.db.query(User.role).filter(User.id == str(user_id)).first()
        except SQLAlchemyError:
            logger.warning(f"Principal lookup failed for user {user_id}", exc_info=True)
            return None
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def read_rules(self, resource_type: str, resource_id: str) -> List[VisibilityRule]:
        """
        Get the visibility rules governing a resource.

        Returns an empty list when the resource has neither a rule record
        nor a populated embedded column; callers then apply defaults.
        """
        resource_type = normalize_resource_type(resource_type)
        resource_id = str(resource_id)

        if self.rules_table_enabled:
            rules = self._read_rule_records(resource_type, resource_id)
            if rules:
                return rules

        return self._read_embedded_rule(resource_type, resource_id)

    def _read_rule_records(self, resource_type: str, resource_id: str) -> List[VisibilityRule]:
        from portal.db.models.visibility import VisibilityRuleRecord

        try:
            records = self.db.query(VisibilityRuleRecord).filter(
                and_(
                    VisibilityRuleRecord.resource_type == resource_type,
                    VisibilityRuleRecord.resource_id == resource_id,
                )
            ).all()
        except SQLAlchemyError:
            logger.warning(
                f"Rule table read failed for {resource_type}/{resource_id}; "
                f"falling back to embedded column",
                exc_info=True,
            )
            return []

        return [
            VisibilityRule.from_record({
                "resource_type": record.resource_type,
                "resource_id": record.resource_id,
                "allowed_roles": record.allowed_roles or [],
                "allowed_users": record.allowed_users,
                "is_public": record.is_public,
                "restrictions": record.restrictions,
            })
            for record in records
        ]

    def _read_embedded_rule(self, resource_type: str, resource_id: str) -> List[VisibilityRule]:
        adapter = self.registry.get_adapter(resource_type)
        if adapter is None:
            return []

        try:
            visibility_roles = adapter.read_embedded_visibility(self.db, resource_id)
        except SQLAlchemyError:
            logger.warning(
                f"Embedded visibility read failed for {resource_type}/{resource_id}",
                exc_info=True,
            )
            return []

        if visibility_roles is None:
            return []
        return [VisibilityRule.from_embedded(resource_type, resource_id, visibility_roles)]

    def write_rule(self, rule: VisibilityRule) -> None:
        """
        Persist a rule.

        Upserts the rule record (when the table is enabled) and stamps the
        resource's embedded column. The embedded update is blind: a missing
        row is a silent no-op.

        Raises:
            VisibilityWriteError: If the database rejects the write
        """
        try:
            if self.rules_table_enabled:
                self._upsert_rule_record(rule)

            adapter = self.registry.get_adapter(rule.resource_type)
            if adapter is None:
                logger.debug(
                    f"No adapter for resource type {rule.resource_type}; embedded column not written"
                )
            else:
                adapter.write_embedded_visibility(self.db, rule.resource_id, rule.embedded_value())

            self.db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                f"Failed to write visibility for {rule.resource_type}/{rule.resource_id}: {exc}"
            )
            raise VisibilityWriteError(
                f"Failed to write visibility for {rule.resource_type}/{rule.resource_id}",
                rule.resource_type,
                rule.resource_id,
            ) from exc

    def _upsert_rule_record(self, rule: VisibilityRule) -> None:
        from portal.db.models.visibility import VisibilityRuleRecord

        record = self.db.query(VisibilityRuleRecord).filter(
            and_(
                VisibilityRuleRecord.resource_type == rule.resource_type,
                VisibilityRuleRecord.resource_id == rule.resource_id,
            )
        ).with_for_update().first()

        payload = rule.to_record()
        if record is None:
            record = VisibilityRuleRecord(
                resource_type=rule.resource_type,
                resource_id=rule.resource_id,
            )
            self.db.add(record)

        record.allowed_roles = payload["allowed_roles"]
        record.allowed_users = payload["allowed_users"]
        record.is_public = payload["is_public"]
        record.restrictions = payload["restrictions"]

    def read_all_with_visibility(self, resource_type: str) -> List[EmbeddedVisibility]:
        """Scan a resource table for rows with a populated embedded column."""
        adapter = self.registry.get_adapter(resource_type)
        if adapter is None:
            return []

        try:
            return adapter.read_all_with_visibility(self.db)
        except SQLAlchemyError:
            logger.warning(f"Visibility scan failed for {resource_type}", exc_info=True)
            return []

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def is_approved(self, resource_type: str, resource_id: str, user_id: str) -> bool:
        """Check for an approval record; lookup failures count as not approved."""
        from portal.db.models.visibility import VisibilityApproval

        try:
            approval = self.db.query(VisibilityApproval.id).filter(
                and_(
                    VisibilityApproval.resource_type == normalize_resource_type(resource_type),
                    VisibilityApproval.resource_id == str(resource_id),
                    VisibilityApproval.user_id == str(user_id),
                )
            ).first()
        except SQLAlchemyError:
            logger.warning(
                f"Approval lookup failed for {resource_type}/{resource_id} user={user_id}",
                exc_info=True,
            )
            return False
        return approval is not None

    def save_approval(
        self,
        resource_type: str,
        resource_id: str,
        user_id: str,
        approved_by: Optional[str] = None,
    ) -> None:
        """Record an approval; re-approving an approved viewer is a no-op."""
        from portal.db.models.visibility import VisibilityApproval

        resource_type = normalize_resource_type(resource_type)
        resource_id = str(resource_id)
        if self.is_approved(resource_type, resource_id, user_id):
            return

        try:
            self.db.add(VisibilityApproval(
                resource_type=resource_type,
                resource_id=resource_id,
                user_id=str(user_id),
                approved_by=str(approved_by) if approved_by else None,
            ))
            self.db.flush()
        except SQLAlchemyError as exc:
            logger.error(f"Failed to approve {user_id} for {resource_type}/{resource_id}: {exc}")
            raise VisibilityWriteError(
                f"Failed to approve viewer for {resource_type}/{resource_id}",
                resource_type,
                resource_id,
            ) from exc

    def delete_approval(self, resource_type: str, resource_id: str, user_id: str) -> int:
        """Remove an approval record and return the number of records removed."""
        from portal.db.models.visibility import VisibilityApproval

        resource_type = normalize_resource_type(resource_type)
        resource_id = str(resource_id)
        try:
            removed = self.db.query(VisibilityApproval).filter(
                and_(
                    VisibilityApproval.resource_type == resource_type,
                    VisibilityApproval.resource_id == resource_id,
                    VisibilityApproval.user_id == str(user_id),
                )
            ).delete(synchronize_session="fetch")
            self.db.flush()
        except SQLAlchemyError as exc:
            logger.error(f"Failed to revoke {user_id} for {resource_type}/{resource_id}: {exc}")
            raise VisibilityWriteError(
                f"Failed to revoke approval for {resource_type}/{resource_id}",
                resource_type,
                resource_id,
            ) from exc
        return removed
