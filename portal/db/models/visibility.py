"""Visibility rule and approval models.

A rule record is the authoritative visibility declaration for one
resource; the unique constraint keeps it to one record per resource.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, UniqueConstraint

from portal.db.base import Base


class VisibilityRuleRecord(Base):
    """
    Explicit visibility rule for a single resource.

    Mirrors the VisibilityRule value type: allowed roles and users,
    the public flag and the optional restrictions block.
    """
    __tablename__ = "visibility_rules"
    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", name="uq_visibility_rules_resource"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(64), nullable=False, index=True)

    allowed_roles = Column(JSON, nullable=False, default=list)
    allowed_users = Column(JSON(none_as_null=True), nullable=True)
    is_public = Column(Boolean, nullable=True)
    restrictions = Column(JSON(none_as_null=True), nullable=True)  # exclude_roles, exclude_users, require_approval, time_based

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<VisibilityRuleRecord {self.resource_type}/{self.resource_id}>"


class VisibilityApproval(Base):
    """
    Approval granting one user access to a resource whose rule
    requires approval.
    """
    __tablename__ = "visibility_approvals"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "user_id", name="uq_visibility_approvals_viewer"
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<VisibilityApproval {self.resource_type}/{self.resource_id} user={self.user_id}>"
