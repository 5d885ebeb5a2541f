"""Clerk webhook receiver keeping local user records in sync."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError

from ..auth.clerk import primary_email
from ..core.config import settings
from ..core.db import get_session
from ..core.errors import BadRequest, Conflict, InternalError, Unauthenticated
from ..core.metrics import record_webhook_event
from ..models import User
from .ownership import find_user

logger = logging.getLogger(__name__)
router = APIRouter()

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def _verify(body: bytes, request: Request) -> dict[str, Any]:
    """Check the svix signature over the exact bytes received and return the event."""

    headers = {name: request.headers.get(name) for name in SIGNATURE_HEADERS}
    if not all(headers.values()):
        raise BadRequest("Missing svix signature headers")

    if not settings.WEBHOOK_SECRET:
        logger.error("WEBHOOK_SECRET is not configured")
        raise InternalError("Webhook secret not configured")

    try:
        Webhook(settings.WEBHOOK_SECRET).verify(body, headers)
    except WebhookVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise Unauthenticated("Invalid signature") from exc
    except ValueError as exc:
        # Older svix releases decode the payload inside verify.
        raise BadRequest("Malformed webhook payload") from exc

    # Parse only after the signature over the raw bytes has been checked.
    try:
        event = json.loads(body)
    except ValueError as exc:
        raise BadRequest("Malformed webhook payload") from exc
    if not isinstance(event, dict):
        raise BadRequest("Malformed webhook payload")
    return event


def _handle_user_created(session: Session, data: dict[str, Any]) -> None:
    clerk_id = str(data["id"])
    email = primary_email(data.get("email_addresses") or [], data.get("primary_email_address_id"))
    user = find_user(session, clerk_id)
    if user is None:
        # Username stays unset until the user completes onboarding.
        session.add(User(clerk_id=clerk_id, email=email, username=None))
        logger.info("user.created: stored user %s", clerk_id)
    else:
        user.email = email
        logger.info("user.created: user %s already present, refreshed email", clerk_id)
    session.flush()


def _handle_user_updated(session: Session, data: dict[str, Any]) -> None:
    clerk_id = str(data["id"])
    email = primary_email(data.get("email_addresses") or [], data.get("primary_email_address_id"))
    user = find_user(session, clerk_id)
    if user is None:
        session.add(User(clerk_id=clerk_id, email=email, username=None))
        logger.warning("user.updated for unknown user %s; created record", clerk_id)
    else:
        user.email = email
        logger.info("user.updated: email refreshed for %s", clerk_id)
    session.flush()


def _handle_user_deleted(session: Session, data: dict[str, Any]) -> None:
    clerk_id = data.get("id")
    if not data.get("deleted") or not clerk_id:
        logger.info("user.deleted without confirmation; ignoring")
        return

    user = find_user(session, str(clerk_id))
    if user is None:
        logger.info("user.deleted for unknown user %s; nothing to remove", clerk_id)
        return

    try:
        session.delete(user)
        session.flush()
    except IntegrityError as exc:
        # Content rows still reference the user (ON DELETE RESTRICT).
        session.rollback()
        logger.warning("user.deleted for %s blocked: user still owns content", clerk_id)
        raise Conflict("User still owns content") from exc
    logger.info("user.deleted: removed user %s", clerk_id)


HANDLERS = {
    "user.created": _handle_user_created,
    "user.updated": _handle_user_updated,
    "user.deleted": _handle_user_deleted,
}


@router.post("/webhook", summary="Clerk identity webhook")
async def identity_webhook(
    request: Request,
    session: Session = Depends(get_session),
) -> dict[str, bool]:
    """Verify and apply a Clerk user lifecycle event."""

    body = await request.body()
    event = _verify(body, request)

    event_type = str(event.get("type", ""))
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled webhook event type: %s", event_type)
        record_webhook_event(event_type or "unknown", "ignored")
        return {"received": True}

    data = event.get("data")
    if not isinstance(data, dict) or (event_type != "user.deleted" and not data.get("id")):
        record_webhook_event(event_type, "invalid")
        raise BadRequest("Malformed webhook payload")

    try:
        handler(session, data)
    except Conflict:
        record_webhook_event(event_type, "conflict")
        raise
    record_webhook_event(event_type, "ok")
    return {"received": True}
