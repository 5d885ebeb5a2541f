"""Authentication helpers and clients."""

from .clerk import ClerkClient, IdentityProfile, get_clerk_client
from .session import SessionClaims, get_session_verifier, read_session, set_session_verifier

__all__ = [
    "ClerkClient",
    "IdentityProfile",
    "SessionClaims",
    "get_clerk_client",
    "get_session_verifier",
    "read_session",
    "set_session_verifier",
]
