"""Resource-type adapters for embedded visibility columns.

Each resource type stores its visibility roles on its own row, under a
column whose name varies by type. An adapter hides the table and column
for one type; the registry maps resource types to adapters so that
adding a type means registering one more adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

from sqlalchemy.orm import Session

from portal.common.logger import get_logger
from portal.db.base import Base
from portal.db.models import (
    Form,
    InternBlogPost,
    InternProject,
    Presentation,
    School,
    Volunteer,
    VolunteerHours,
)
from .rules import ResourceType, normalize_resource_type

logger = get_logger("adapters")


@dataclass(frozen=True)
class EmbeddedVisibility:
    """One row's embedded visibility column."""

    resource_id: str
    allowed_roles: List[str]


class ResourceAdapter(ABC):
    """Abstract base class for resource storage adapters.

    Each adapter must implement methods for:
    - Reading one row's embedded visibility value
    - Blindly updating one row's embedded visibility value
    - Scanning every row that has a populated visibility value
    """

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """Return the resource type identifier (e.g., 'form', 'blog_post')."""
        pass

    @property
    def enumerable(self) -> bool:
        """Whether visible-resource listing supports this type."""
        return False

    @abstractmethod
    def read_embedded_visibility(self, db: Session, resource_id: str) -> Optional[List[str]]:
        """Return the row's visibility roles, or None if unset or the row is missing."""
        pass

    @abstractmethod
    def write_embedded_visibility(self, db: Session, resource_id: str, value: List[str]) -> int:
        """Update the row's visibility roles and return the number of rows touched."""
        pass

    @abstractmethod
    def read_all_with_visibility(self, db: Session) -> List[EmbeddedVisibility]:
        """Return every row whose visibility column is populated."""
        pass


class ModelResourceAdapter(ResourceAdapter):
    """Adapter over a SQLAlchemy model with a JSON visibility column."""

    def __init__(
        self,
        resource_type: str,
        model: Type[Base],
        column_name: str = "visibility_roles",
        *,
        enumerable: bool = False,
    ):
        self._resource_type = normalize_resource_type(resource_type)
        self.model = model
        self.column_name = column_name
        self._enumerable = enumerable

    @property
    def resource_type(self) -> str:
        return self._resource_type

    @property
    def enumerable(self) -> bool:
        return self._enumerable

    @property
    def column(self):
        return getattr(self.model, self.column_name)

    def read_embedded_visibility(self, db: Session, resource_id: str) -> Optional[List[str]]:
        row = db.query(self.column).filter(self.model.id == resource_id).first()
        if row is None:
            return None
        return row[0]

    def write_embedded_visibility(self, db: Session, resource_id: str, value: List[str]) -> int:
        touched = (
            db.query(self.model)
            .filter(self.model.id == resource_id)
            .update({self.column_name: list(value)}, synchronize_session="fetch")
        )
        if touched == 0:
            logger.debug(
                f"No {self.model.__tablename__} row with id {resource_id}; visibility update skipped"
            )
        return touched

    def read_all_with_visibility(self, db: Session) -> List[EmbeddedVisibility]:
        rows = db.query(self.model.id, self.column).filter(self.column.isnot(None)).all()
        return [
            EmbeddedVisibility(resource_id=str(resource_id), allowed_roles=list(roles))
            for resource_id, roles in rows
            if roles is not None
        ]

    def __repr__(self) -> str:
        return (
            f"<ModelResourceAdapter {self.resource_type} -> "
            f"{self.model.__tablename__}.{self.column_name}>"
        )


class ResourceAdapterRegistry:
    """Registry mapping resource types to storage adapters."""

    def __init__(self):
        self._adapters: Dict[str, ResourceAdapter] = {}

    def register(self, adapter: ResourceAdapter) -> None:
        """Register an adapter, replacing any adapter for the same type."""
        resource_type = adapter.resource_type
        if resource_type in self._adapters:
            logger.warning(f"Overwriting existing adapter for resource type: {resource_type}")
        self._adapters[resource_type] = adapter
        logger.debug(f"Registered resource adapter: {resource_type}")

    def unregister(self, resource_type: str) -> None:
        key = normalize_resource_type(resource_type)
        if key in self._adapters:
            del self._adapters[key]
            logger.debug(f"Unregistered resource adapter: {key}")

    def get_adapter(self, resource_type: str) -> Optional[ResourceAdapter]:
        """Get adapter by resource type, or None if the type is not registered."""
        return self._adapters.get(normalize_resource_type(resource_type))

    def list_resource_types(self) -> List[str]:
        return list(self._adapters.keys())

    def list_enumerable_types(self) -> List[str]:
        return [name for name, adapter in self._adapters.items() if adapter.enumerable]

    def clear(self) -> None:
        """Clear all registered adapters (mainly for testing)."""
        self._adapters.clear()


def build_default_registry() -> ResourceAdapterRegistry:
    """Create a registry holding the portal's standard resource types."""
    registry = ResourceAdapterRegistry()
    registry.register(ModelResourceAdapter(ResourceType.FORM, Form, enumerable=True))
    registry.register(
        ModelResourceAdapter(ResourceType.VOLUNTEER_APPLICATION, Volunteer, enumerable=True)
    )
    registry.register(ModelResourceAdapter(ResourceType.SCHOOL_REQUEST, School, enumerable=True))
    registry.register(
        ModelResourceAdapter(ResourceType.PRESENTATION, Presentation, enumerable=True)
    )
    registry.register(ModelResourceAdapter(ResourceType.VOLUNTEER_HOURS, VolunteerHours))
    registry.register(ModelResourceAdapter(ResourceType.INTERN_PROJECT, InternProject))
    registry.register(
        ModelResourceAdapter(ResourceType.BLOG_POST, InternBlogPost, "permitted_roles")
    )
    return registry


# Global registry instance
_registry = build_default_registry()


def get_registry() -> ResourceAdapterRegistry:
    """Get the global resource adapter registry."""
    return _registry
