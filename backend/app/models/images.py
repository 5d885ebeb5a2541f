"""Image metadata stored in the relational database."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from . import Base
from .mixins import guard_owner_column, reject_owner_change, utcnow


class Image(Base):
    """An optimized image stored in Cloudinary and owned by one user."""

    __tablename__ = "images"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    title = Column(String, nullable=False)
    public_id = Column(String, nullable=False)
    width = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False, default=0)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="images")

    @validates("user_id")
    def _validate_user_id(self, key: str, value: uuid.UUID | None) -> uuid.UUID | None:
        return reject_owner_change(self, value)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Image(id={self.id!s}, public_id={self.public_id!r}, user_id={self.user_id!s})"


guard_owner_column(Image.__table__)
