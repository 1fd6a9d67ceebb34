"""Tests for the visibility evaluator."""

from datetime import datetime, timezone

import pytest

from portal.core.visibility.defaults import DefaultVisibility
from portal.core.visibility.evaluator import DecisionSource, VisibilityEvaluator
from portal.core.visibility.rules import Role, VisibilityRule
from portal.core.visibility.store import VisibilityStore
from tests.factories import FIXED_NOW
from tests.factories import (
    create_approval,
    create_blog_post,
    create_form,
    create_presentation,
    create_rule,
    create_user,
)


@pytest.fixture
def evaluator(db_session, clock):
    return VisibilityEvaluator(VisibilityStore(db_session), clock=clock)


class TestPrincipal:
    """Tests for principal resolution."""

    def test_unknown_user_denied(self, evaluator, db_session):
        """Test that an unknown principal is denied even on public resources."""
        post = create_blog_post(db_session, permitted_roles=["public"])

        decision = evaluator.decide("nobody", "blog_post", post.id)

        assert decision.allowed is False
        assert decision.source is DecisionSource.PRINCIPAL

    @pytest.mark.parametrize("user_id", [None, "", "   "])
    def test_blank_user_denied(self, evaluator, user_id):
        """Test that blank ids are denied without a lookup."""
        assert evaluator.can_user_view(user_id, "blog_post", "B1") is False


class TestDefaults:
    """Tests for the default-by-type fallback."""

    def test_blog_post_default_public(self, evaluator, db_session):
        """Test that blog posts without rules are visible to any principal."""
        post = create_blog_post(db_session)
        for role in Role:
            user = create_user(db_session, role=role.value)
            assert evaluator.can_user_view(user.id, "blog_post", post.id) is True

    def test_default_decision_source(self, evaluator, db_session):
        """Test that default decisions name their source."""
        user = create_user(db_session, role="partner")

        decision = evaluator.decide(user.id, "volunteer_hours", "H1")

        assert decision.allowed is False
        assert decision.source is DecisionSource.DEFAULT
        assert decision.user_role == "partner"

    def test_unknown_type_founder_only(self, evaluator, db_session):
        """Test that unlisted types fall back to founder only."""
        founder = create_user(db_session, role="founder")
        admin = create_user(db_session, role="admin")

        assert evaluator.can_user_view(founder.id, "newsletter", "N1") is True
        assert evaluator.can_user_view(admin.id, "newsletter", "N1") is False

    def test_injected_defaults(self, db_session, clock):
        """Test that a substituted default table is used."""
        user = create_user(db_session, role="teacher")
        evaluator = VisibilityEvaluator(
            VisibilityStore(db_session),
            DefaultVisibility({"presentation": ["founder"]}),
            clock=clock,
        )

        assert evaluator.can_user_view(user.id, "presentation", "P1") is False

    def test_defaults_ignored_when_rule_exists(self, evaluator, db_session):
        """Test that an explicit denying rule beats an allowing default."""
        teacher = create_user(db_session, role="teacher")
        form = create_form(db_session)
        create_rule(db_session, "form", form.id, allowed_roles=["founder"])

        decision = evaluator.decide(teacher.id, "form", form.id)

        assert decision.allowed is False
        assert decision.source is DecisionSource.RULE

    def test_empty_embedded_column_denies(self, evaluator, db_session):
        """Test that an empty embedded column is a rule, not a missing one."""
        teacher = create_user(db_session, role="teacher")
        presentation = create_presentation(db_session, visibility_roles=[])

        assert evaluator.can_user_view(teacher.id, "presentation", presentation.id) is False


class TestRules:
    """Tests for rule evaluation through the store."""

    def test_public_short_circuit(self, evaluator, db_session):
        """Test that a public rule wins over exclusions."""
        user = create_user(db_session, role="volunteer")
        create_rule(
            db_session,
            "presentation",
            "P1",
            is_public=True,
            restrictions={"exclude_roles": ["volunteer"], "exclude_users": [user.id]},
        )

        assert evaluator.can_user_view(user.id, "presentation", "P1") is True

    def test_exclusion_precedence(self, evaluator, db_session):
        """Test that an excluded user is denied despite a role match."""
        excluded = create_user(db_session, role="volunteer")
        other = create_user(db_session, role="volunteer")
        create_rule(
            db_session,
            "presentation",
            "P1",
            allowed_roles=["volunteer"],
            restrictions={"exclude_users": [excluded.id]},
        )

        assert evaluator.can_user_view(excluded.id, "presentation", "P1") is False
        assert evaluator.can_user_view(other.id, "presentation", "P1") is True

    def test_expired_window_does_not_block_role_match(self, evaluator, db_session):
        """Test the fixed check order: a role match allows before the window is read."""
        intern = create_user(db_session, role="intern")
        create_rule(
            db_session,
            "presentation",
            "P1",
            allowed_roles=["intern"],
            restrictions={"time_based": {"end_date": "2026-01-01T00:00:00Z"}},
        )

        assert evaluator.can_user_view(intern.id, "presentation", "P1") is True

    def test_window_only_rule_never_allows(self, evaluator, db_session):
        """Test that a window-only rule denies even inside the window."""
        founder = create_user(db_session, role="founder")
        create_rule(
            db_session,
            "presentation",
            "P1",
            restrictions={"time_based": {"start_date": "2026-01-01T00:00:00Z"}},
        )

        assert evaluator.can_user_view(founder.id, "presentation", "P1") is False

    def test_clock_is_injected(self, db_session):
        """Test that the window is checked against the injected clock."""
        user = create_user(db_session, role="partner")
        create_rule(
            db_session,
            "presentation",
            "P1",
            restrictions={"time_based": {"end_date": "2026-01-01T00:00:00Z"}},
        )
        store = VisibilityStore(db_session)
        before = VisibilityEvaluator(store, clock=lambda: datetime(2025, 12, 1, tzinfo=timezone.utc))
        after = VisibilityEvaluator(store, clock=lambda: FIXED_NOW)

        assert before.decide(user.id, "presentation", "P1").reason == "no matching role or user"
        assert after.decide(user.id, "presentation", "P1").reason == "outside the rule's time window"

    def test_evaluate_single_rule(self, evaluator):
        """Test evaluating a rule for an already resolved principal."""
        rule = VisibilityRule.build("presentation", "P1", ["teacher"])

        assert evaluator.evaluate_rule(rule, "U1", "teacher") is True
        assert evaluator.evaluate_rule(rule, "U1", "partner") is False

    def test_approval_required(self, evaluator, db_session):
        """Test that a required approval gates the allow-list."""
        intern = create_user(db_session, role="intern")
        create_rule(
            db_session,
            "intern_project",
            "IP1",
            allowed_roles=["intern"],
            restrictions={"require_approval": True},
        )

        assert evaluator.can_user_view(intern.id, "intern_project", "IP1") is False
        create_approval(db_session, "intern_project", "IP1", intern.id)
        assert evaluator.can_user_view(intern.id, "intern_project", "IP1") is True

    def test_rules_scoped_to_resource(self, evaluator, db_session):
        """Test that rules from another resource do not leak."""
        teacher = create_user(db_session, role="teacher")
        create_rule(db_session, "presentation", "P1", allowed_roles=["founder"])
        create_rule(db_session, "presentation", "P2", allowed_roles=["teacher"])

        assert evaluator.can_user_view(teacher.id, "presentation", "P1") is False
        assert evaluator.can_user_view(teacher.id, "presentation", "P2") is True

    def test_decision_to_dict(self, evaluator, db_session):
        """Test the serialized decision."""
        teacher = create_user(db_session, role="teacher")
        create_rule(db_session, "presentation", "P1", allowed_roles=["teacher"])

        payload = evaluator.decide(teacher.id, "presentation", "P1").to_dict()

        assert payload["allowed"] is True
        assert payload["source"] == "rule"
        assert payload["rules_evaluated"] == 1
        assert payload["reason"] == "role 'teacher' is allowed"


class TestRoundTrip:
    """Tests for set-then-check in one session."""

    def test_set_then_view(self, manager, db_session):
        """Test that a freshly set rule is evaluated immediately."""
        intern = create_user(db_session, role="intern")
        presentation = create_presentation(db_session)

        manager.set_visibility("presentation", presentation.id, ["founder", "intern"])

        assert manager.can_user_view(intern.id, "presentation", presentation.id) is True

    def test_presentation_scenario(self, manager, db_session):
        """Test default allow followed by an explicit founder-only rule."""
        teacher = create_user(db_session, role="teacher")

        assert manager.can_user_view(teacher.id, "presentation", "P1") is True

        manager.set_visibility("presentation", "P1", ["founder"])

        assert manager.can_user_view(teacher.id, "presentation", "P1") is False
        assert manager.explain(teacher.id, "presentation", "P1").evaluated_at == FIXED_NOW
