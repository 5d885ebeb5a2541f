"""Onboarding and profile endpoints for the signed-in identity."""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import clerk
from ..core.db import get_session
from ..core.errors import BadRequest
from ..models import User
from .ownership import find_user, require_external_id
from .schemas import CamelModel, SuccessResponse

logger = logging.getLogger(__name__)
router = APIRouter()

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")
USERNAME_TAKEN = "That username is already taken"


class OnboardingRequest(BaseModel):
    username: Optional[str] = None


class ProfileResponse(CamelModel):
    id: Optional[str]
    clerk_id: str
    email: Optional[str]
    username: Optional[str]
    onboarding_complete: bool
    synced: bool


def validate_username(raw: Any) -> str:
    """Return the trimmed username or raise ``BadRequest`` explaining the problem."""

    username = raw.strip() if isinstance(raw, str) else ""
    if not username:
        raise BadRequest("Username is required")
    if not USERNAME_PATTERN.match(username):
        raise BadRequest(
            "Username must be 3-20 characters and contain only letters, numbers, or underscores"
        )
    return username


def _username_holder(session: Session, username: str) -> User | None:
    stmt = select(User).where(User.username == username)
    return session.execute(stmt).scalar_one_or_none()


@router.patch("/onboarding", response_model=SuccessResponse, summary="Choose a username")
async def complete_onboarding(
    payload: OnboardingRequest,
    request: Request,
    session: Session = Depends(get_session),
) -> SuccessResponse:
    """Claim a username and mark onboarding complete with Clerk.

    The pre-check gives a friendly answer in the common case; the unique
    constraint on ``users.username`` settles concurrent claims.
    """

    external_id = require_external_id(request)
    username = validate_username(payload.username)

    client = clerk.get_clerk_client()
    user = find_user(session, external_id)

    if user is not None and user.username is not None:
        if user.username != username:
            raise BadRequest("Username has already been chosen")
        # Resubmission of the same name: only the Clerk flag may be missing.
        await client.mark_onboarding_complete(external_id)
        return SuccessResponse()

    if _username_holder(session, username) is not None:
        raise BadRequest(USERNAME_TAKEN)

    if user is None:
        # The user.created webhook has not landed yet; build the row from Clerk.
        profile = await client.get_user(external_id)
        user = User(clerk_id=external_id, email=profile.email)
        session.add(user)
        logger.info("Created missing user record for %s during onboarding", external_id)
    user.username = username

    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        if _username_holder(session, username) is not None:
            logger.info("Username %s claimed concurrently; rejecting %s", username, external_id)
            raise BadRequest(USERNAME_TAKEN) from exc

        # The user.created webhook stored the row between our lookup and the flush.
        user = find_user(session, external_id)
        if user is None:
            raise
        if user.username is not None and user.username != username:
            raise BadRequest("Username has already been chosen") from exc
        logger.info("User %s synced concurrently; claiming %s on the stored row", external_id, username)
        user.username = username
        try:
            session.flush()
        except IntegrityError as retry_exc:
            session.rollback()
            raise BadRequest(USERNAME_TAKEN) from retry_exc

    await client.mark_onboarding_complete(external_id)
    logger.info("User %s completed onboarding as %s", external_id, username)
    return SuccessResponse()


@router.get("/me", response_model=ProfileResponse, summary="Current identity profile")
async def read_profile(
    request: Request,
    session: Session = Depends(get_session),
) -> ProfileResponse:
    """Return the local record of the caller and whether onboarding is done."""

    external_id = require_external_id(request)
    claims = getattr(request.state, "session_claims", None)
    user = find_user(session, external_id)

    return ProfileResponse(
        id=str(user.id) if user else None,
        clerk_id=external_id,
        email=user.email if user else None,
        username=user.username if user else None,
        onboarding_complete=bool(
            (user is not None and user.is_onboarded)
            or (claims is not None and claims.onboarding_complete)
        ),
        synced=user is not None,
    )
