"""Database models for the coordination portal."""

from portal.db.models.user import User
from portal.db.models.visibility import VisibilityRuleRecord, VisibilityApproval
from portal.db.models.resources import (
    Form,
    Volunteer,
    School,
    Presentation,
    VolunteerHours,
    InternProject,
    InternBlogPost,
)

__all__ = [
    "User",
    "VisibilityRuleRecord",
    "VisibilityApproval",
    "Form",
    "Volunteer",
    "School",
    "Presentation",
    "VolunteerHours",
    "InternProject",
    "InternBlogPost",
]
