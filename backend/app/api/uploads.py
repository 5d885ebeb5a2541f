"""Validation of multipart uploads before they are sent to Cloudinary."""
from __future__ import annotations

import logging
import os

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import BadRequest, InternalError, PayloadTooLarge, UpstreamFailure
from ..core.media import CloudinaryStore

logger = logging.getLogger(__name__)


def _measure(upload: UploadFile) -> int:
    if upload.size is not None:
        return int(upload.size)
    stream = upload.file
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def validate_upload(upload: UploadFile | None, *, media_type: str, max_bytes: int) -> int:
    """Check presence, type family and size of ``upload`` and return its size.

    ``media_type`` is the MIME family the file must belong to (``image`` or
    ``video``); uploads without a content type are accepted and left for
    Cloudinary to reject.
    """

    if upload is None or not upload.filename:
        raise BadRequest("No file uploaded")

    content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if content_type and not content_type.startswith(f"{media_type}/"):
        raise BadRequest(f"Unsupported file type: expected {media_type}")

    size = _measure(upload)
    if size <= 0:
        raise BadRequest("Uploaded file is empty")
    if size > max_bytes:
        raise PayloadTooLarge()
    return size


def parse_declared_size(raw: str | None, fallback: int) -> int:
    """Return the client-advertised original size, or ``fallback`` when unusable."""

    if raw is None:
        return fallback
    try:
        value = int(float(raw.strip()))
    except (ValueError, AttributeError):
        return fallback
    return value if value > 0 else fallback


async def persist_or_discard(
    session: Session, store: CloudinaryStore, public_id: str, *, resource_type: str
) -> None:
    """Flush the new content row; if that fails, remove the asset just uploaded."""

    try:
        session.flush()
    except SQLAlchemyError as exc:
        logger.error("Metadata write failed for %s; discarding uploaded asset", public_id)
        try:
            await run_in_threadpool(store.destroy, public_id, resource_type=resource_type)
        except UpstreamFailure:
            logger.error("Could not discard orphaned asset %s", public_id)
        raise InternalError(f"Upload {resource_type} failed") from exc
