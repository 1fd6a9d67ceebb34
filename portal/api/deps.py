"""FastAPI dependencies for request handlers that serve portal resources."""

from typing import Generator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from portal.core.visibility import get_visibility_manager
from portal.core.visibility.rules import normalize_resource_type
from portal.db.session import SessionLocal


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(request: Request) -> str:
    """User id attached to the request by the authentication layer."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return str(user_id)


class VisibilityGuard:
    """
    FastAPI dependency that only lets a request through if the current
    user can view the resource named in the path.

    A denied view is reported as 404 so that hidden resources are
    indistinguishable from missing ones.

    Usage:
        @router.get(
            "/presentations/{resource_id}",
            dependencies=[Depends(VisibilityGuard("presentation"))],
        )
        def get_presentation(resource_id: str):
            ...
    """

    def __init__(self, resource_type: str, id_param: str = "resource_id"):
        self.resource_type = normalize_resource_type(resource_type)
        self.id_param = id_param

    def __call__(
        self,
        request: Request,
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> str:
        resource_id = request.path_params.get(self.id_param)
        if resource_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Resource not found",
            )

        manager = get_visibility_manager(db)
        if not manager.can_user_view(user_id, self.resource_type, resource_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Resource not found",
            )
        return resource_id
