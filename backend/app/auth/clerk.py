"""HTTP client for the Clerk Backend API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import httpx

from ..core.config import settings
from ..core.errors import InternalError, UpstreamFailure

logger = logging.getLogger(__name__)


def primary_email(email_addresses: list[dict[str, Any]], primary_id: str | None) -> str:
    """Pick the primary address, falling back to the first listed one.

    Clerk payloads carry the list of addresses plus a pointer to the primary
    one; the pointer can be stale, so an unmatched id falls back to the list.
    """

    for entry in email_addresses:
        if entry.get("id") == primary_id and entry.get("email_address"):
            return str(entry["email_address"])
    if email_addresses:
        return str(email_addresses[0].get("email_address") or "")
    return ""


@dataclass(frozen=True)
class IdentityProfile:
    """Authoritative view of a Clerk user."""

    id: str
    email: str
    public_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def onboarding_complete(self) -> bool:
        return bool(self.public_metadata.get("onboardingComplete", False))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IdentityProfile":
        return cls(
            id=str(payload.get("id", "")),
            email=primary_email(
                payload.get("email_addresses") or [],
                payload.get("primary_email_address_id"),
            ),
            public_metadata=dict(payload.get("public_metadata") or {}),
        )


class ClerkClient:
    """Minimal async client for the user endpoints of the Clerk Backend API."""

    def __init__(
        self,
        api_url: str,
        secret_key: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self.secret_key:
            raise InternalError("Clerk secret key not configured")
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        async with httpx.AsyncClient(
            base_url=self.api_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.request(method, path, headers=headers, **kwargs)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Clerk %s %s failed: %s", method, path, exc)
                raise UpstreamFailure("Identity provider request failed") from exc
            return response.json()

    async def get_user(self, user_id: str) -> IdentityProfile:
        """Fetch the current state of ``user_id`` from Clerk."""

        payload = await self._request("GET", f"/v1/users/{user_id}")
        return IdentityProfile.from_payload(payload)

    async def mark_onboarding_complete(self, user_id: str) -> None:
        """Set ``public_metadata.onboardingComplete`` so session claims pick it up."""

        await self._request(
            "PATCH",
            f"/v1/users/{user_id}/metadata",
            json={"public_metadata": {"onboardingComplete": True}},
        )
        logger.info("Marked onboarding complete for %s", user_id)


@lru_cache(maxsize=1)
def get_clerk_client() -> ClerkClient:
    """Return the process-wide Clerk Backend API client."""

    return ClerkClient(settings.CLERK_API_URL, settings.CLERK_SECRET_KEY, timeout=settings.CLERK_TIMEOUT)
