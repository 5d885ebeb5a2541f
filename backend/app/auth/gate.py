"""Onboarding gate: classify each request before it reaches a route.

Every request lands in one of three states: no valid session, signed in
without a username, or fully onboarded. The gate reads the session claims
first and only asks Clerk directly when the claims say onboarding is still
pending, because claims embedded in the session token are refreshed on a
short timer and lag behind the authoritative record right after a user
picks a username.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from starlette.requests import Request

from ..core.config import settings
from ..core.errors import VaultError
from . import clerk, session

logger = logging.getLogger(__name__)

ONBOARDING_API_PATH = "/identity/onboarding"
PROFILE_API_PATH = "/identity/me"


class GateOutcome(str, enum.Enum):
    ALLOW = "allow"
    SIGN_IN = "sign_in"
    ONBOARDING = "onboarding"
    HOME = "home"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    reason: str
    claims: session.SessionClaims | None = None


def _normalize(path: str) -> str:
    return path.rstrip("/") or "/"


def is_auth_page(path: str) -> bool:
    path = _normalize(path)
    return path.startswith(settings.SIGN_IN_PATH) or path.startswith(settings.SIGN_UP_PATH)


def is_public_route(path: str) -> bool:
    return is_auth_page(path) or _normalize(path) in settings.PUBLIC_PATHS


def is_onboarding_route(path: str) -> bool:
    return _normalize(path) in (settings.ONBOARDING_PATH, ONBOARDING_API_PATH, PROFILE_API_PATH)


def is_api_route(path: str) -> bool:
    path = _normalize(path)
    return any(path == prefix or path.startswith(f"{prefix}/") for prefix in settings.API_PREFIXES)


async def _backend_onboarding_complete(external_id: str) -> bool:
    try:
        profile = await clerk.get_clerk_client().get_user(external_id)
    except VaultError as exc:
        logger.warning("Onboarding lookup failed for %s, treating as incomplete: %s", external_id, exc)
        return False
    return profile.onboarding_complete


async def evaluate(request: Request) -> GateDecision:
    """Decide whether ``request`` passes, or where it should be sent instead."""

    path = request.url.path

    if is_auth_page(path):
        claims = await session.read_session(request)
        if claims is not None:
            return GateDecision(GateOutcome.HOME, "signed_in_on_auth_page", claims)
        return GateDecision(GateOutcome.ALLOW, "public")

    if is_public_route(path):
        return GateDecision(GateOutcome.ALLOW, "public")

    claims = await session.read_session(request)
    if claims is None:
        return GateDecision(GateOutcome.SIGN_IN, "no_session")

    if is_onboarding_route(path):
        return GateDecision(GateOutcome.ALLOW, "onboarding_route", claims)

    if claims.onboarding_complete:
        return GateDecision(GateOutcome.ALLOW, "claims", claims)

    if await _backend_onboarding_complete(claims.subject):
        logger.info("Session claims stale for %s; backend reports onboarding complete", claims.subject)
        return GateDecision(GateOutcome.ALLOW, "backend", claims)

    return GateDecision(GateOutcome.ONBOARDING, "not_onboarded", claims)
