"""Resource tables carrying an embedded visibility column.

Only the columns the visibility core reads or writes are modelled,
plus a title or name for readability in fixtures and admin tooling.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Float, Text

from portal.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Form(Base):
    __tablename__ = "forms"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Volunteer(Base):
    """A volunteer application."""
    __tablename__ = "volunteers"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False, default="pending")
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class School(Base):
    """A school's presentation request."""
    __tablename__ = "schools"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="pending")
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Presentation(Base):
    __tablename__ = "presentations"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    scheduled_at = Column(DateTime, nullable=True)
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class VolunteerHours(Base):
    __tablename__ = "volunteer_hours"

    id = Column(String(36), primary_key=True, default=_new_id)
    volunteer_id = Column(String(36), nullable=False, index=True)
    hours = Column(Float, nullable=False, default=0.0)
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class InternProject(Base):
    __tablename__ = "intern_projects"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    visibility_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class InternBlogPost(Base):
    """Blog posts keep their visibility in ``permitted_roles``."""
    __tablename__ = "intern_blog_posts"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    permitted_roles = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
