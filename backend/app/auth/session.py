"""Clerk session token verification using Authlib."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

import httpx
from authlib.jose import JsonWebKey, JsonWebToken, KeySet
from authlib.jose.errors import JoseError
from starlette.requests import Request

from ..core.config import settings

logger = logging.getLogger(__name__)

JWKS_CACHE_SECONDS = 3600
# Minimum gap between refetches forced by an unknown key id.
JWKS_REFRESH_COOLDOWN_SECONDS = 60


class InvalidSessionToken(Exception):
    """Raised when a session token cannot be verified."""


@dataclass(frozen=True)
class SessionClaims:
    """The verified parts of a Clerk session token the application uses."""

    subject: str
    onboarding_complete: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], metadata_claim: str) -> "SessionClaims":
        subject = payload.get("sub")
        if not subject:
            raise InvalidSessionToken("Token has no subject")
        metadata = payload.get(metadata_claim) or {}
        complete = bool(metadata.get("onboardingComplete", False)) if isinstance(metadata, dict) else False
        return cls(subject=str(subject), onboarding_complete=complete, raw=dict(payload))


class SessionVerifier(Protocol):
    """Protocol implemented by session token verifiers."""

    async def verify(self, token: str) -> SessionClaims:
        """Return the claims of ``token`` or raise ``InvalidSessionToken``."""


class ClerkSessionVerifier:
    """Verify RS256 Clerk session JWTs against a PEM key or the instance JWKS."""

    def __init__(
        self,
        *,
        jwks_url: str | None,
        secret_key: str | None = None,
        pem_key: str | None = None,
        authorized_parties: tuple[str, ...] = (),
        metadata_claim: str = "publicMetadata",
        leeway: int = 5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.jwks_url = jwks_url
        self.secret_key = secret_key
        self.authorized_parties = authorized_parties
        self.metadata_claim = metadata_claim
        self.leeway = leeway
        self.timeout = timeout
        self.transport = transport
        self._jwt = JsonWebToken(["RS256"])
        self._static_key = JsonWebKey.import_key(pem_key, {"kty": "RSA"}) if pem_key else None
        self._key_set: KeySet | None = None
        self._key_set_fetched_at = 0.0
        self._forced_refresh_at: float | None = None

    async def _fetch_key_set(self) -> KeySet:
        if not self.jwks_url:
            raise InvalidSessionToken("No JWKS URL or PEM key configured")
        headers = {}
        if self.secret_key:
            headers["Authorization"] = f"Bearer {self.secret_key}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.jwks_url, headers=headers)
            response.raise_for_status()
        try:
            key_set = JsonWebKey.import_key_set(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidSessionToken(f"Malformed JWKS response: {exc}") from exc
        logger.info("Fetched %d signing keys from %s", len(key_set.keys), self.jwks_url)
        return key_set

    async def _signing_key(self, *, refresh: bool = False) -> Any:
        if self._static_key is not None:
            return self._static_key
        now = time.monotonic()
        if refresh and self._key_set is not None:
            if self._forced_refresh_at is not None and now - self._forced_refresh_at < JWKS_REFRESH_COOLDOWN_SECONDS:
                return self._key_set
            self._forced_refresh_at = now
        expired = now - self._key_set_fetched_at > JWKS_CACHE_SECONDS
        if self._key_set is None or expired or refresh:
            try:
                self._key_set = await self._fetch_key_set()
            except httpx.HTTPError as exc:
                raise InvalidSessionToken(f"Unable to load signing keys: {exc}") from exc
            self._key_set_fetched_at = time.monotonic()
        return self._key_set

    def _decode(self, token: str, key: Any) -> dict[str, Any]:
        claims = self._jwt.decode(token, key)
        claims.validate(leeway=self.leeway)
        return dict(claims)

    async def verify(self, token: str) -> SessionClaims:
        key = await self._signing_key()
        try:
            payload = self._decode(token, key)
        except ValueError:
            # Unknown ``kid``: the instance may have rotated keys since the last fetch.
            if self._static_key is not None:
                raise InvalidSessionToken("Signing key not recognised") from None
            try:
                payload = self._decode(token, await self._signing_key(refresh=True))
            except (JoseError, ValueError) as exc:
                raise InvalidSessionToken(str(exc)) from exc
        except JoseError as exc:
            raise InvalidSessionToken(str(exc)) from exc

        if self.authorized_parties:
            azp = payload.get("azp")
            if azp and azp not in self.authorized_parties:
                raise InvalidSessionToken(f"Unauthorized party {azp!r}")

        return SessionClaims.from_payload(payload, self.metadata_claim)


def _default_jwks_url() -> str | None:
    if settings.CLERK_JWKS_URL:
        return settings.CLERK_JWKS_URL
    if settings.CLERK_SECRET_KEY:
        return f"{settings.CLERK_API_URL.rstrip('/')}/v1/jwks"
    return None


@lru_cache(maxsize=1)
def _build_default_verifier() -> ClerkSessionVerifier:
    return ClerkSessionVerifier(
        jwks_url=_default_jwks_url(),
        secret_key=settings.CLERK_SECRET_KEY,
        pem_key=settings.CLERK_JWT_KEY,
        authorized_parties=settings.CLERK_AUTHORIZED_PARTIES,
        metadata_claim=settings.CLERK_METADATA_CLAIM,
        leeway=settings.CLERK_CLOCK_SKEW,
        timeout=settings.CLERK_TIMEOUT,
    )


_verifier: SessionVerifier | None = None


def set_session_verifier(verifier: SessionVerifier | None) -> None:
    """Override the global verifier instance (useful for testing)."""

    global _verifier
    _verifier = verifier


def get_session_verifier() -> SessionVerifier:
    """Return the configured session verifier."""

    if _verifier is not None:
        return _verifier
    return _build_default_verifier()


def extract_session_token(request: Request) -> str | None:
    """Read the session token from the bearer header or the session cookie."""

    authorization = request.headers.get("authorization", "").strip()
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    return cookie or None


async def read_session(request: Request) -> SessionClaims | None:
    """Return verified claims for the request, or ``None`` without a valid session."""

    token = extract_session_token(request)
    if not token:
        return None
    try:
        return await get_session_verifier().verify(token)
    except InvalidSessionToken as exc:
        logger.info("Rejected session token on %s: %s", request.url.path, exc)
        return None
