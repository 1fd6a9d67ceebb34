"""Tests for resource adapters and the adapter registry."""

from portal.core.visibility.adapters import (
    EmbeddedVisibility,
    ModelResourceAdapter,
    ResourceAdapterRegistry,
    build_default_registry,
    get_registry,
)
from portal.core.visibility.rules import ResourceType
from portal.db.models import InternBlogPost, Presentation
from tests.factories import create_blog_post, create_presentation


class TestResourceAdapterRegistry:
    """Tests for ResourceAdapterRegistry."""

    def test_default_registry_types(self):
        """Test that every resource type has an adapter."""
        registry = build_default_registry()

        assert set(registry.list_resource_types()) == {member.value for member in ResourceType}

    def test_enumerable_types(self):
        """Test the subset of types supported by listing."""
        registry = build_default_registry()

        assert set(registry.list_enumerable_types()) == {
            "form",
            "volunteer_application",
            "school_request",
            "presentation",
        }

    def test_blog_post_column(self):
        """Test that blog posts use the permitted_roles column."""
        adapter = build_default_registry().get_adapter(ResourceType.BLOG_POST)

        assert adapter.model is InternBlogPost
        assert adapter.column_name == "permitted_roles"

    def test_lookup_is_normalized(self):
        """Test that lookups ignore case."""
        assert build_default_registry().get_adapter(" Presentation ").model is Presentation

    def test_unknown_type(self):
        """Test that an unknown type has no adapter."""
        assert build_default_registry().get_adapter("newsletter") is None

    def test_register_and_unregister(self):
        """Test registering an extra type."""
        registry = ResourceAdapterRegistry()
        registry.register(ModelResourceAdapter("talk", Presentation))

        assert registry.get_adapter("talk") is not None
        registry.unregister("TALK")
        assert registry.get_adapter("talk") is None

    def test_register_overwrite_warns(self, caplog):
        """Test that overwriting an adapter logs a warning."""
        registry = ResourceAdapterRegistry()
        registry.register(ModelResourceAdapter("talk", Presentation))
        registry.register(ModelResourceAdapter("talk", Presentation, enumerable=True))

        assert "Overwriting existing adapter" in caplog.text
        assert registry.get_adapter("talk").enumerable is True

    def test_clear(self):
        """Test clearing the registry."""
        registry = build_default_registry()
        registry.clear()

        assert registry.list_resource_types() == []

    def test_global_registry(self):
        """Test that the global registry is shared."""
        assert get_registry() is get_registry()


class TestModelResourceAdapter:
    """Tests for ModelResourceAdapter against the database."""

    def test_read_embedded(self, db_session):
        """Test reading a populated column."""
        presentation = create_presentation(db_session, visibility_roles=["teacher"])
        adapter = ModelResourceAdapter("presentation", Presentation)

        assert adapter.read_embedded_visibility(db_session, presentation.id) == ["teacher"]

    def test_read_unset_and_missing(self, db_session):
        """Test that unset columns and missing rows read as None."""
        presentation = create_presentation(db_session)
        adapter = ModelResourceAdapter("presentation", Presentation)

        assert adapter.read_embedded_visibility(db_session, presentation.id) is None
        assert adapter.read_embedded_visibility(db_session, "missing") is None

    def test_write_embedded(self, db_session):
        """Test stamping the column on an existing row."""
        post = create_blog_post(db_session)
        adapter = ModelResourceAdapter("blog_post", InternBlogPost, "permitted_roles")

        touched = adapter.write_embedded_visibility(db_session, post.id, ["intern"])

        assert touched == 1
        assert adapter.read_embedded_visibility(db_session, post.id) == ["intern"]

    def test_write_missing_row_is_noop(self, db_session):
        """Test that updating a missing row touches nothing."""
        adapter = ModelResourceAdapter("presentation", Presentation)

        assert adapter.write_embedded_visibility(db_session, "missing", ["intern"]) == 0

    def test_read_all_with_visibility(self, db_session):
        """Test that only rows with a populated column are returned."""
        listed = create_presentation(db_session, visibility_roles=["public"])
        empty = create_presentation(db_session, visibility_roles=[])
        create_presentation(db_session)
        adapter = ModelResourceAdapter("presentation", Presentation)

        rows = adapter.read_all_with_visibility(db_session)

        assert sorted(rows, key=lambda row: row.allowed_roles) == sorted([
            EmbeddedVisibility(resource_id=listed.id, allowed_roles=["public"]),
            EmbeddedVisibility(resource_id=empty.id, allowed_roles=[]),
        ], key=lambda row: row.allowed_roles)
