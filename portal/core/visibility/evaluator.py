"""Visibility evaluation for the coordination portal.

Decides whether a principal may view a resource by combining explicit
rules, embedded visibility columns and the default-by-type table.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from portal.common.logger import get_logger
from .defaults import DefaultVisibility
from .rules import (
    VisibilityRule,
    evaluate_visibility_rule,
    normalize_resource_type,
    normalize_user_id,
)
from .store import VisibilityStore

logger = get_logger("evaluator")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DecisionSource(str, Enum):
    """Where a visibility decision came from."""

    PRINCIPAL = "principal"  # Unknown principal, denied before any rule lookup
    RULE = "rule"            # Explicit rule or embedded column
    DEFAULT = "default"      # Default-by-type table


@dataclass
class VisibilityDecision:
    """Result of evaluating one principal against one resource."""
    allowed: bool
    source: DecisionSource
    reason: str
    user_role: Optional[str] = None
    rules_evaluated: int = 0
    evaluated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "source": self.source.value,
            "reason": self.reason,
            "user_role": self.user_role,
            "rules_evaluated": self.rules_evaluated,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


class VisibilityEvaluator:
    """
    Evaluates whether a principal can view a resource.

    When a resource has rules, any rule that allows grants access and
    the defaults are never consulted. Without rules, the default-by-type
    table decides. Unknown principals are always denied.
    """

    def __init__(
        self,
        store: VisibilityStore,
        defaults: Optional[DefaultVisibility] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the evaluator.

        Args:
            store: Policy store accessor
            defaults: Default-by-type table (built-in table if omitted)
            clock: Returns the current, timezone-aware time
        """
        self.store = store
        self.defaults = defaults or DefaultVisibility()
        self.clock = clock

    def can_user_view(self, user_id: str, resource_type: str, resource_id: str) -> bool:
        return self.decide(user_id, resource_type, resource_id).allowed

    def decide(self, user_id: str, resource_type: str, resource_id: str) -> VisibilityDecision:
        """
        Evaluate a principal against a resource.

        Args:
            user_id: Principal's user id
            resource_type: Resource type, e.g. ``presentation``
            resource_id: Opaque resource id

        Returns:
            VisibilityDecision with the outcome and its reason
        """
        resource_type = normalize_resource_type(resource_type)
        resource_id = str(resource_id)
        now = self.clock()

        user_role = self.store.get_user_role(user_id) if normalize_user_id(user_id) else None
        if user_role is None:
            decision = VisibilityDecision(
                allowed=False,
                source=DecisionSource.PRINCIPAL,
                reason=f"unknown user {user_id}",
                evaluated_at=now,
            )
            self._log(decision, user_id, resource_type, resource_id)
            return decision

        rules = self.store.read_rules(resource_type, resource_id)
        if not rules:
            allowed = self.defaults.allows(user_role, resource_type)
            decision = VisibilityDecision(
                allowed=allowed,
                source=DecisionSource.DEFAULT,
                reason=(
                    f"default for {resource_type} "
                    f"{'grants' if allowed else 'does not grant'} role '{user_role}'"
                ),
                user_role=user_role,
                evaluated_at=now,
            )
            self._log(decision, user_id, resource_type, resource_id)
            return decision

        decision = self._evaluate_rules(rules, str(user_id), user_role, now)
        self._log(decision, user_id, resource_type, resource_id)
        return decision

    def evaluate_rule(self, rule: VisibilityRule, user_id: str, user_role: Optional[str]) -> bool:
        """Evaluate a single rule for a principal whose role is already known."""
        allowed, _ = self._evaluate_rule(rule, user_id, user_role, self.clock())
        return allowed

    def _evaluate_rules(
        self, rules: List[VisibilityRule], user_id: str, user_role: str, now: datetime
    ) -> VisibilityDecision:
        reasons = []
        for index, rule in enumerate(rules, start=1):
            allowed, reason = self._evaluate_rule(rule, user_id, user_role, now)
            if allowed:
                return VisibilityDecision(
                    allowed=True,
                    source=DecisionSource.RULE,
                    reason=reason,
                    user_role=user_role,
                    rules_evaluated=index,
                    evaluated_at=now,
                )
            reasons.append(reason)

        return VisibilityDecision(
            allowed=False,
            source=DecisionSource.RULE,
            reason="; ".join(reasons),
            user_role=user_role,
            rules_evaluated=len(rules),
            evaluated_at=now,
        )

    def _evaluate_rule(
        self, rule: VisibilityRule, user_id: str, user_role: Optional[str], now: datetime
    ):
        return evaluate_visibility_rule(
            rule,
            user_id,
            user_role,
            now=now,
            is_approved=lambda: self.store.is_approved(
                rule.resource_type, rule.resource_id, user_id
            ),
        )

    def _log(
        self,
        decision: VisibilityDecision,
        user_id: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        logger.debug(
            f"{'allow' if decision.allowed else 'deny'} user={user_id} "
            f"resource={resource_type}/{resource_id} "
            f"source={decision.source.value} reason={decision.reason}"
        )
