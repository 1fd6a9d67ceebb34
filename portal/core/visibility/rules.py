"""Visibility rule definitions for the coordination portal.

A rule declares who may view one resource: allowed roles and users, a
public flag, and optional restrictions (exclusions, an approval gate and
a validity window).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from portal.common.logger import get_logger

logger = get_logger("rules")


PUBLIC_ROLE = "public"


class Role(str, Enum):
    """Roles known to the portal. Stored roles are free-form strings."""

    FOUNDER = "founder"
    ADMIN = "admin"
    INTERN = "intern"
    VOLUNTEER = "volunteer"
    TEACHER = "teacher"
    PARTNER = "partner"
    OUTREACH = "outreach"


class ResourceType(str, Enum):
    """Resource types with a registered storage adapter."""

    FORM = "form"
    VOLUNTEER_APPLICATION = "volunteer_application"
    SCHOOL_REQUEST = "school_request"
    PRESENTATION = "presentation"
    VOLUNTEER_HOURS = "volunteer_hours"
    INTERN_PROJECT = "intern_project"
    BLOG_POST = "blog_post"


# Roles that see every enumerated resource with a populated visibility column
LIST_OVERRIDE_ROLES = frozenset({Role.ADMIN.value, Role.FOUNDER.value})


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def normalize_role(value: Any) -> Optional[str]:
    value = _plain(value)
    if not value or not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized or None


def normalize_resource_type(value: Any) -> str:
    value = _plain(value)
    return str(value or "").strip().lower()


def normalize_user_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def _normalize_roles(values: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    if isinstance(values, (str, Enum)):
        values = [values]
    collected: List[str] = []
    for entry in values or ():
        role = normalize_role(entry)
        if role and role not in collected:
            collected.append(role)
    return tuple(collected)


def _normalize_users(values: Optional[Iterable[Any]]) -> Optional[Tuple[str, ...]]:
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    collected: List[str] = []
    for entry in values:
        user_id = normalize_user_id(entry)
        if user_id and user_id not in collected:
            collected.append(user_id)
    return tuple(collected)


def normalize_visibility_roles(roles: Optional[Iterable[Any]]) -> List[str]:
    """
    Normalize a role selection for storage.

    Blanks and duplicates are dropped, order is kept. Selecting
    ``public`` clears every other role.
    """
    normalized = list(_normalize_roles(roles))
    if PUBLIC_ROLE in normalized:
        return [PUBLIC_ROLE]
    return normalized


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _parse_datetime(value: Any, tz_name: Optional[str]) -> Optional[datetime]:
    """Parse a window bound; naive values are read in ``tz_name`` (UTC if unset)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Ignoring unparseable time window bound: {value!r}")
            return None

    if parsed.tzinfo is None:
        tz = timezone.utc
        if tz_name:
            try:
                tz = ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning(f"Unknown timezone {tz_name!r}, reading window bound as UTC")
        parsed = parsed.replace(tzinfo=tz)
    return parsed


@dataclass(frozen=True)
class TimeWindow:
    """Validity window. Open-ended bounds are unbounded."""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    timezone: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TimeWindow":
        tz_name = _first(payload, "timezone", "time_zone")
        return cls(
            start_date=_parse_datetime(_first(payload, "start_date", "startDate"), tz_name),
            end_date=_parse_datetime(_first(payload, "end_date", "endDate"), tz_name),
            timezone=tz_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.start_date:
            payload["start_date"] = self.start_date.isoformat()
        if self.end_date:
            payload["end_date"] = self.end_date.isoformat()
        if self.timezone:
            payload["timezone"] = self.timezone
        return payload

    def contains(self, now: datetime) -> bool:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class Restrictions:
    exclude_roles: Tuple[str, ...] = ()
    exclude_users: Tuple[str, ...] = ()
    require_approval: bool = False
    time_based: Optional[TimeWindow] = None

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> Optional["Restrictions"]:
        if payload is None:
            return None
        if isinstance(payload, Restrictions):
            return payload
        raw_window = _first(payload, "time_based", "timeBased")
        window = None
        if isinstance(raw_window, TimeWindow):
            window = raw_window
        elif isinstance(raw_window, Mapping):
            window = TimeWindow.from_dict(raw_window)
        return cls(
            exclude_roles=_normalize_roles(_first(payload, "exclude_roles", "excludeRoles")),
            exclude_users=_normalize_users(_first(payload, "exclude_users", "excludeUsers")) or (),
            require_approval=bool(_first(payload, "require_approval", "requireApproval")),
            time_based=window,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "exclude_roles": list(self.exclude_roles),
            "exclude_users": list(self.exclude_users),
            "require_approval": self.require_approval,
        }
        if self.time_based:
            payload["time_based"] = self.time_based.to_dict()
        return payload


@dataclass(frozen=True)
class VisibilityRule:
    """
    The persisted policy unit for one resource.

    ``allowed_users`` and ``is_public`` stay ``None`` when unset so that
    copying a rule reproduces exactly what was declared.
    """
    resource_type: str
    resource_id: str
    allowed_roles: Tuple[str, ...] = field(default_factory=tuple)
    allowed_users: Optional[Tuple[str, ...]] = None
    is_public: Optional[bool] = None
    restrictions: Optional[Restrictions] = None

    @classmethod
    def build(
        cls,
        resource_type: Any,
        resource_id: Any,
        allowed_roles: Optional[Iterable[Any]] = None,
        *,
        allowed_users: Optional[Iterable[Any]] = None,
        is_public: Optional[bool] = None,
        restrictions: Optional[Mapping[str, Any]] = None,
    ) -> "VisibilityRule":
        """Create a normalized rule from loosely typed arguments."""
        return cls(
            resource_type=normalize_resource_type(resource_type),
            resource_id=str(resource_id),
            allowed_roles=_normalize_roles(allowed_roles),
            allowed_users=_normalize_users(allowed_users),
            is_public=is_public,
            restrictions=Restrictions.from_dict(restrictions),
        )

    @classmethod
    def from_record(cls, payload: Mapping[str, Any]) -> "VisibilityRule":
        """Create a rule from a storage row or API payload (snake or camel case)."""
        return cls.build(
            _first(payload, "resource_type", "resourceType"),
            _first(payload, "resource_id", "resourceId"),
            _first(payload, "allowed_roles", "allowedRoles") or [],
            allowed_users=_first(payload, "allowed_users", "allowedUsers"),
            is_public=_first(payload, "is_public", "isPublic"),
            restrictions=_first(payload, "restrictions"),
        )

    @classmethod
    def from_embedded(
        cls, resource_type: str, resource_id: str, visibility_roles: Iterable[Any]
    ) -> "VisibilityRule":
        """Synthesize a rule from an embedded visibility column value."""
        roles = _normalize_roles(visibility_roles)
        return cls(
            resource_type=normalize_resource_type(resource_type),
            resource_id=str(resource_id),
            allowed_roles=roles,
            is_public=PUBLIC_ROLE in roles,
        )

    def embedded_value(self) -> List[str]:
        """Value stamped on the resource's own visibility column."""
        if self.is_public:
            return [PUBLIC_ROLE]
        return list(self.allowed_roles)

    def to_record(self) -> Dict[str, Any]:
        return {
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "allowed_roles": list(self.allowed_roles),
            "allowed_users": list(self.allowed_users) if self.allowed_users is not None else None,
            "is_public": self.is_public,
            "restrictions": self.restrictions.to_dict() if self.restrictions else None,
        }


def evaluate_visibility_rule(
    rule: VisibilityRule,
    user_id: str,
    user_role: Optional[str],
    *,
    now: datetime,
    is_approved: Optional[Callable[[], bool]] = None,
) -> Tuple[bool, str]:
    """
    Evaluate a single rule against a principal.

    Checks run in a fixed order and each one can short-circuit: public,
    excluded role, excluded user, allowed role, allowed user, time window.

    Args:
        rule: The rule to evaluate
        user_id: Principal's user id
        user_role: Principal's role
        now: Current time (timezone aware)
        is_approved: Approval lookup used when the rule requires approval

    Returns:
        Tuple of (allowed, reason)
    """
    role = normalize_role(user_role)
    user_id = normalize_user_id(user_id)
    restrictions = rule.restrictions

    if rule.is_public:
        return True, "public"

    if restrictions:
        if role and role in restrictions.exclude_roles:
            return False, f"role '{role}' is excluded"
        if user_id and user_id in restrictions.exclude_users:
            return False, f"user '{user_id}' is excluded"

    if role and role in rule.allowed_roles:
        return _gate_on_approval(restrictions, is_approved, f"role '{role}' is allowed")

    if user_id and rule.allowed_users and user_id in rule.allowed_users:
        return _gate_on_approval(restrictions, is_approved, f"user '{user_id}' is allowed")

    if restrictions and restrictions.time_based:
        # No allow matched above, so the window can only deny here.
        if not restrictions.time_based.contains(now):
            return False, "outside the rule's time window"

    return False, "no matching role or user"


def _gate_on_approval(
    restrictions: Optional[Restrictions],
    is_approved: Optional[Callable[[], bool]],
    reason: str,
) -> Tuple[bool, str]:
    if restrictions and restrictions.require_approval:
        if is_approved is None or not is_approved():
            return False, f"{reason} but approval is pending"
        return True, f"{reason} and approved"
    return True, reason


def check_visibility_roles(visibility_roles: Optional[Iterable[Any]], user_role: Optional[str]) -> bool:
    """
    Loose role check used when listing resources.

    Public, a role match, or a founder/admin principal is enough. Allowed
    users, exclusions, approvals and time windows are not consulted.
    """
    if visibility_roles is None:
        return False
    roles = _normalize_roles(visibility_roles)
    if PUBLIC_ROLE in roles:
        return True
    role = normalize_role(user_role)
    if role and role in roles:
        return True
    return role in LIST_OVERRIDE_ROLES
