"""Caller resolution and ownership checks shared by the content routes."""
from __future__ import annotations

import uuid
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from ..core.errors import Forbidden, NotFound, NotReady, Unauthenticated
from ..models import Image, User, Video

ContentT = TypeVar("ContentT", Video, Image)


def require_external_id(request: Request) -> str:
    """Return the Clerk id attached by the onboarding gate."""

    external_id = getattr(request.state, "external_id", None)
    if not external_id:
        raise Unauthenticated()
    return str(external_id)


def find_user(session: Session, external_id: str) -> User | None:
    stmt = select(User).where(User.clerk_id == external_id)
    return session.execute(stmt).scalar_one_or_none()


def require_local_user(session: Session, external_id: str) -> User:
    """Return the caller's local record, or ``NotReady`` if the webhook has not synced it."""

    user = find_user(session, external_id)
    if user is None:
        raise NotReady()
    return user


def load_owned(
    session: Session,
    model: type[ContentT],
    record_id: str,
    external_id: str,
    *,
    label: str,
) -> ContentT:
    """Load ``record_id`` and confirm the caller owns it.

    The record is looked up before the caller: a missing record is
    ``NotFound``, while a caller without a local identity is treated like any
    other non-owner and gets ``Forbidden``.
    """

    try:
        record_uuid = uuid.UUID(str(record_id))
    except (TypeError, ValueError):
        raise NotFound(f"{label} not found") from None

    record = session.get(model, record_uuid)
    if record is None:
        raise NotFound(f"{label} not found")

    owner = find_user(session, external_id)
    if owner is None or record.user_id != owner.id:
        raise Forbidden()
    return record
