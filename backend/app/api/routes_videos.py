"""Video listing, ingestion and owner-only editing endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.db import get_session
from ..core.errors import BadRequest
from ..core.media import get_media_store
from ..core.rate_limiter import limiter
from ..models import User, Video
from .ownership import load_owned, require_external_id, require_local_user
from .schemas import CamelModel, SuccessResponse, VideoResponse, to_video_response
from .uploads import parse_declared_size, persist_or_discard, validate_upload

logger = logging.getLogger(__name__)
router = APIRouter()


class VideoUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class VideoUploadResponse(CamelModel):
    video: VideoResponse


@router.get("", response_model=list[VideoResponse], summary="List my videos")
async def list_videos(
    request: Request,
    session: Session = Depends(get_session),
) -> list[VideoResponse]:
    """Return the caller's videos, newest first."""

    external_id = require_external_id(request)
    stmt = (
        select(Video)
        .join(User, Video.user_id == User.id)
        .where(User.clerk_id == external_id)
        .order_by(Video.created_at.desc(), Video.id.desc())
    )
    videos = session.execute(stmt).scalars().all()
    return [to_video_response(video) for video in videos]


@router.post("", response_model=VideoUploadResponse, summary="Upload a video")
@limiter.limit(settings.RATE_LIMIT_UPLOAD)
async def upload_video(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    original_size: Optional[str] = Form(default=None, alias="originalSize"),
    session: Session = Depends(get_session),
) -> VideoUploadResponse:
    """Send the video to Cloudinary for transcoding, then record its metadata."""

    external_id = require_external_id(request)
    user = require_local_user(session, external_id)

    size = validate_upload(file, media_type="video", max_bytes=settings.VIDEO_MAX_BYTES)
    clean_title = (title or "").strip()
    if not clean_title:
        raise BadRequest("Title is required")

    store = get_media_store()
    asset = await run_in_threadpool(store.upload_video, file.file)

    video = Video(
        title=clean_title,
        description=(description or "").strip() or None,
        public_id=asset.public_id,
        original_size=parse_declared_size(original_size, size),
        compressed_size=asset.bytes,
        duration=asset.duration,
        user_id=user.id,
    )
    session.add(video)
    await persist_or_discard(session, store, asset.public_id, resource_type="video")

    logger.info("Stored video %s (%s) for user %s", video.id, asset.public_id, user.id)
    return VideoUploadResponse(video=to_video_response(video))


@router.patch("/{video_id}", response_model=VideoResponse, summary="Edit a video")
async def update_video(
    video_id: str,
    payload: VideoUpdateRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> VideoResponse:
    """Change the title and description of a video the caller owns."""

    external_id = require_external_id(request)

    title = (payload.title or "").strip()
    if not title:
        raise BadRequest("Title is required")

    video = load_owned(session, Video, video_id, external_id, label="Video")
    video.title = title
    video.description = payload.description
    session.flush()
    return to_video_response(video)


@router.delete("/{video_id}", response_model=SuccessResponse, summary="Delete a video")
async def delete_video(
    video_id: str,
    request: Request,
    session: Session = Depends(get_session),
) -> SuccessResponse:
    """Remove the Cloudinary asset, then the metadata row.

    If Cloudinary fails the row is kept so the delete can be retried.
    """

    external_id = require_external_id(request)
    video = load_owned(session, Video, video_id, external_id, label="Video")

    store = get_media_store()
    await run_in_threadpool(store.destroy, video.public_id, resource_type="video")

    public_id = video.public_id
    session.delete(video)
    session.flush()
    logger.info("Deleted video %s (%s)", video_id, public_id)
    return SuccessResponse()
