"""Image listing, ingestion, owner-only editing and social-share endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.db import get_session
from ..core.errors import BadRequest
from ..core.media import get_media_store
from ..core.rate_limiter import limiter
from ..media import SOCIAL_FORMATS, social_image_url
from ..models import Image, User
from .ownership import load_owned, require_external_id, require_local_user
from .schemas import CamelModel, ImageResponse, SuccessResponse, to_image_response
from .uploads import persist_or_discard, validate_upload

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_TITLE = "Untitled"


class ImageUpdateRequest(BaseModel):
    title: Optional[str] = None


class ImageUploadResponse(CamelModel):
    public_id: str


class SocialFormatResponse(CamelModel):
    slug: str
    label: str
    width: int
    height: int
    aspect_ratio: str


class SocialImageResponse(CamelModel):
    format: SocialFormatResponse
    url: Optional[str]


def _format_response(slug: str) -> SocialFormatResponse:
    fmt = SOCIAL_FORMATS[slug]
    return SocialFormatResponse(
        slug=fmt.slug,
        label=fmt.label,
        width=fmt.width,
        height=fmt.height,
        aspect_ratio=fmt.aspect_ratio,
    )


@router.get("", response_model=list[ImageResponse], summary="List my images")
async def list_images(
    request: Request,
    session: Session = Depends(get_session),
) -> list[ImageResponse]:
    """Return the caller's images, newest first."""

    external_id = require_external_id(request)
    stmt = (
        select(Image)
        .join(User, Image.user_id == User.id)
        .where(User.clerk_id == external_id)
        .order_by(Image.created_at.desc(), Image.id.desc())
    )
    images = session.execute(stmt).scalars().all()
    return [to_image_response(image) for image in images]


@router.get("/social-formats", response_model=list[SocialFormatResponse], summary="Social media crop presets")
async def list_social_formats() -> list[SocialFormatResponse]:
    return [_format_response(slug) for slug in SOCIAL_FORMATS]


@router.post("", response_model=ImageUploadResponse, summary="Upload an image")
@limiter.limit(settings.RATE_LIMIT_UPLOAD)
async def upload_image(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    session: Session = Depends(get_session),
) -> ImageUploadResponse:
    """Store the image in Cloudinary, then record its dimensions."""

    external_id = require_external_id(request)
    user = require_local_user(session, external_id)

    validate_upload(file, media_type="image", max_bytes=settings.IMAGE_MAX_BYTES)

    store = get_media_store()
    asset = await run_in_threadpool(store.upload_image, file.file)

    image = Image(
        title=(title or "").strip() or DEFAULT_TITLE,
        public_id=asset.public_id,
        width=asset.width,
        height=asset.height,
        user_id=user.id,
    )
    session.add(image)
    await persist_or_discard(session, store, asset.public_id, resource_type="image")

    logger.info("Stored image %s (%s) for user %s", image.id, asset.public_id, user.id)
    return ImageUploadResponse(public_id=asset.public_id)


@router.patch("/{image_id}", response_model=ImageResponse, summary="Rename an image")
async def update_image(
    image_id: str,
    payload: ImageUpdateRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> ImageResponse:
    external_id = require_external_id(request)

    title = (payload.title or "").strip()
    if not title:
        raise BadRequest("Title is required")

    image = load_owned(session, Image, image_id, external_id, label="Image")
    image.title = title
    session.flush()
    return to_image_response(image)


@router.delete("/{image_id}", response_model=SuccessResponse, summary="Delete an image")
async def delete_image(
    image_id: str,
    request: Request,
    session: Session = Depends(get_session),
) -> SuccessResponse:
    """Remove the Cloudinary asset, then the metadata row."""

    external_id = require_external_id(request)
    image = load_owned(session, Image, image_id, external_id, label="Image")

    store = get_media_store()
    await run_in_threadpool(store.destroy, image.public_id, resource_type="image")

    public_id = image.public_id
    session.delete(image)
    session.flush()
    logger.info("Deleted image %s (%s)", image_id, public_id)
    return SuccessResponse()


@router.get("/{image_id}/social", response_model=SocialImageResponse, summary="Crop an image for social media")
async def social_image(
    image_id: str,
    request: Request,
    format_slug: str = Query(..., alias="format"),
    session: Session = Depends(get_session),
) -> SocialImageResponse:
    """Return a delivery URL that crops the image to a social media preset."""

    external_id = require_external_id(request)
    fmt = SOCIAL_FORMATS.get(format_slug)
    if fmt is None:
        raise BadRequest(f"Unknown social format: {format_slug}")

    image = load_owned(session, Image, image_id, external_id, label="Image")
    return SocialImageResponse(
        format=_format_response(fmt.slug),
        url=social_image_url(image.public_id, fmt),
    )
