"""User model definition."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from . import Base
from .mixins import utcnow


class User(Base):
    """Local mirror of a Clerk identity."""

    __tablename__ = "users"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    clerk_id = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String, nullable=False, default="")
    username = Column(String(20), nullable=True, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    # Content rows reference users with ON DELETE RESTRICT; the ORM must not
    # try to null out or cascade into them when a user is deleted.
    videos = relationship("Video", back_populates="user", passive_deletes="all")
    images = relationship("Image", back_populates="user", passive_deletes="all")

    @property
    def is_onboarded(self) -> bool:
        return self.username is not None

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"User(id={self.id!s}, clerk_id={self.clerk_id!r}, username={self.username!r})"
