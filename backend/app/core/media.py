"""Cloudinary client helpers for storing media assets."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, BinaryIO

import cloudinary
import cloudinary.uploader

from .config import settings
from .errors import InternalError, UpstreamFailure
from .metrics import record_media_operation

logger = logging.getLogger(__name__)

# Ask Cloudinary to pick quality and deliver mp4 for every stored video.
VIDEO_TRANSFORMATION = [{"quality": "auto", "fetch_format": "mp4"}]

# Results from ``destroy`` that mean the asset is no longer stored.
DESTROYED_RESULTS = {"ok", "not found"}


@dataclass(frozen=True)
class UploadedAsset:
    """Subset of the Cloudinary upload response the application persists."""

    public_id: str
    bytes: int
    width: int = 0
    height: int = 0
    duration: float = 0.0

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> "UploadedAsset":
        return cls(
            public_id=str(payload["public_id"]),
            bytes=int(payload.get("bytes") or 0),
            width=int(payload.get("width") or 0),
            height=int(payload.get("height") or 0),
            duration=float(payload.get("duration") or 0.0),
        )


class CloudinaryStore:
    """Thin wrapper over the Cloudinary SDK used by the content routes.

    The SDK is configured once when the store is built; every method is
    blocking and should be dispatched through ``run_in_threadpool``.
    """

    def __init__(
        self,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        *,
        video_folder: str,
        image_folder: str,
        chunk_size: int,
    ) -> None:
        self.cloud_name = cloud_name
        self.video_folder = video_folder
        self.image_folder = image_folder
        self.chunk_size = chunk_size
        self.configured = bool(cloud_name and api_key and api_secret)
        if self.configured:
            cloudinary.config(
                cloud_name=cloud_name,
                api_key=api_key,
                api_secret=api_secret,
                secure=True,
            )

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise InternalError("Cloudinary credentials not found")

    def upload_video(self, stream: BinaryIO) -> UploadedAsset:
        """Upload a video in chunks, requesting automatic quality and mp4 delivery."""

        self._ensure_configured()
        try:
            response = cloudinary.uploader.upload_large(
                stream,
                resource_type="video",
                folder=self.video_folder,
                transformation=VIDEO_TRANSFORMATION,
                chunk_size=self.chunk_size,
            )
        except Exception as exc:
            record_media_operation("upload", "video", "error")
            logger.exception("Cloudinary video upload failed: %s", exc)
            raise UpstreamFailure("Upload video failed") from exc
        record_media_operation("upload", "video", "ok")
        return UploadedAsset.from_response(response)

    def upload_image(self, stream: BinaryIO) -> UploadedAsset:
        self._ensure_configured()
        try:
            response = cloudinary.uploader.upload(
                stream,
                resource_type="image",
                folder=self.image_folder,
            )
        except Exception as exc:
            record_media_operation("upload", "image", "error")
            logger.exception("Cloudinary image upload failed: %s", exc)
            raise UpstreamFailure("Upload image failed") from exc
        record_media_operation("upload", "image", "ok")
        return UploadedAsset.from_response(response)

    def destroy(self, public_id: str, *, resource_type: str) -> None:
        """Remove an asset, raising ``UpstreamFailure`` unless it is gone afterwards."""

        self._ensure_configured()
        try:
            response = cloudinary.uploader.destroy(
                public_id, resource_type=resource_type, invalidate=True
            )
        except Exception as exc:
            record_media_operation("destroy", resource_type, "error")
            logger.exception("Cloudinary destroy failed for %s: %s", public_id, exc)
            raise UpstreamFailure(f"Failed to delete {resource_type}") from exc

        result = (response or {}).get("result")
        if result not in DESTROYED_RESULTS:
            record_media_operation("destroy", resource_type, "error")
            logger.error("Cloudinary refused to destroy %s: result=%s", public_id, result)
            raise UpstreamFailure(f"Failed to delete {resource_type}")
        record_media_operation("destroy", resource_type, "ok")


@lru_cache(maxsize=1)
def get_media_store() -> CloudinaryStore:
    """Return the process-wide Cloudinary store."""

    return CloudinaryStore(
        settings.CLOUDINARY_CLOUD_NAME,
        settings.CLOUDINARY_API_KEY,
        settings.CLOUDINARY_API_SECRET,
        video_folder=settings.CLOUDINARY_VIDEO_FOLDER,
        image_folder=settings.CLOUDINARY_IMAGE_FOLDER,
        chunk_size=settings.CLOUDINARY_CHUNK_SIZE,
    )
