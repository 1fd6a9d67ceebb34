"""Tests for the FastAPI visibility dependencies."""

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from portal.api.deps import VisibilityGuard, get_current_user_id, get_db
from tests.factories import create_presentation, create_user


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        user_id = request.headers.get("X-User-Id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    @app.get(
        "/presentations/{resource_id}",
        dependencies=[Depends(VisibilityGuard("presentation"))],
    )
    def get_presentation(resource_id: str):
        return {"id": resource_id}

    @app.get("/talks/{talk_id}")
    def get_talk(talk_id: str = Depends(VisibilityGuard("presentation", id_param="talk_id"))):
        return {"id": talk_id}

    @app.get("/me")
    def whoami(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}

    return app


@pytest.fixture
def client(db_session):
    app = _build_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


class TestGetCurrentUserId:
    """Tests for get_current_user_id."""

    def test_authenticated(self, client):
        """Test that the user id set by the auth layer is returned."""
        response = client.get("/me", headers={"X-User-Id": "U1"})

        assert response.status_code == 200
        assert response.json() == {"user_id": "U1"}

    def test_unauthenticated(self, client):
        """Test that a request without a user is rejected."""
        response = client.get("/me")

        assert response.status_code == 401


class TestVisibilityGuard:
    """Tests for VisibilityGuard."""

    def test_allowed(self, client, db_session):
        """Test that a visible resource is served."""
        teacher = create_user(db_session, role="teacher")
        presentation = create_presentation(db_session, visibility_roles=["teacher"])

        response = client.get(
            f"/presentations/{presentation.id}", headers={"X-User-Id": teacher.id}
        )

        assert response.status_code == 200
        assert response.json() == {"id": presentation.id}

    def test_denied_is_not_found(self, client, db_session):
        """Test that a hidden resource looks like a missing one."""
        partner = create_user(db_session, role="partner")
        presentation = create_presentation(db_session, visibility_roles=["teacher"])

        response = client.get(
            f"/presentations/{presentation.id}", headers={"X-User-Id": partner.id}
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Resource not found"

    def test_unknown_user_is_not_found(self, client, db_session):
        """Test that an unknown principal cannot see public resources."""
        presentation = create_presentation(db_session, visibility_roles=["public"])

        response = client.get(f"/presentations/{presentation.id}", headers={"X-User-Id": "ghost"})

        assert response.status_code == 404

    def test_unauthenticated(self, client, db_session):
        """Test that authentication is checked before visibility."""
        presentation = create_presentation(db_session, visibility_roles=["public"])

        response = client.get(f"/presentations/{presentation.id}")

        assert response.status_code == 401

    def test_custom_id_param(self, client, db_session):
        """Test reading the resource id from a named path parameter."""
        founder = create_user(db_session, role="founder")

        response = client.get("/talks/T1", headers={"X-User-Id": founder.id})

        assert response.status_code == 200
        assert response.json() == {"id": "T1"}

    def test_missing_path_param(self, db_session):
        """Test that a guard without its path parameter reports not found."""
        app = FastAPI()

        @app.get("/presentations", dependencies=[Depends(VisibilityGuard("presentation"))])
        def list_presentations():
            return []

        app.dependency_overrides[get_db] = lambda: db_session
        app.dependency_overrides[get_current_user_id] = lambda: "U1"

        response = TestClient(app).get("/presentations")

        assert response.status_code == 404
