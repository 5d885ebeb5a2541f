"""Response payloads shared by the content routes."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..media import image_url, video_urls
from ..models import Image, Video


class CamelModel(BaseModel):
    """Serialize field names in camelCase for the dashboard client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    public_id: str
    original_size: int
    compressed_size: int
    compression_percentage: int
    duration: float
    url: Optional[str]
    thumbnail_url: Optional[str]
    preview_url: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class ImageResponse(CamelModel):
    id: uuid.UUID
    title: str
    public_id: str
    width: int
    height: int
    url: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class SuccessResponse(BaseModel):
    success: bool = True


def to_video_response(video: Video) -> VideoResponse:
    # Size columns are wide integers; coerce so the client always sees numbers.
    return VideoResponse(
        id=video.id,
        title=video.title,
        description=video.description,
        public_id=video.public_id,
        original_size=int(video.original_size or 0),
        compressed_size=int(video.compressed_size or 0),
        compression_percentage=video.compression_percentage,
        duration=float(video.duration or 0.0),
        created_at=video.created_at,
        updated_at=video.updated_at,
        **video_urls(video.public_id),
    )


def to_image_response(image: Image) -> ImageResponse:
    return ImageResponse(
        id=image.id,
        title=image.title,
        public_id=image.public_id,
        width=int(image.width or 0),
        height=int(image.height or 0),
        url=image_url(image.public_id),
        created_at=image.created_at,
        updated_at=image.updated_at,
    )
