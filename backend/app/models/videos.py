"""Video metadata stored in the relational database."""
from __future__ import annotations

import math
import uuid

from sqlalchemy import BigInteger, Column, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from . import Base
from .mixins import guard_owner_column, reject_owner_change, utcnow


class Video(Base):
    """A transcoded video stored in Cloudinary and owned by one user."""

    __tablename__ = "videos"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    public_id = Column(String, nullable=False)
    original_size = Column(BigInteger, nullable=False, default=0)
    compressed_size = Column(BigInteger, nullable=False, default=0)
    duration = Column(Float, nullable=False, default=0.0)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="videos")

    @validates("user_id")
    def _validate_user_id(self, key: str, value: uuid.UUID | None) -> uuid.UUID | None:
        return reject_owner_change(self, value)

    @property
    def compression_percentage(self) -> int:
        """Share of the original size saved by transcoding, in whole percent."""

        original = int(self.original_size or 0)
        if original <= 0:
            return 0
        # Halves round up.
        return math.floor((1 - int(self.compressed_size or 0) / original) * 100 + 0.5)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Video(id={self.id!s}, public_id={self.public_id!r}, user_id={self.user_id!s})"


guard_owner_column(Video.__table__)
