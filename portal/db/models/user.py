import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean

from portal.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    role = Column(String(50), nullable=False, index=True)  # founder, intern, volunteer, teacher, ...
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
