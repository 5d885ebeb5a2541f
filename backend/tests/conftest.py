from __future__ import annotations

import base64
import hashlib
import hmac
import io
import sys
import time
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.api import routes_images, routes_videos
from backend.app.auth import clerk as clerk_module
from backend.app.auth.clerk import IdentityProfile
from backend.app.auth.session import InvalidSessionToken, SessionClaims, set_session_verifier
from backend.app.core import db as db_module
from backend.app.core import media as media_module
from backend.app.core.config import settings
from backend.app.core.errors import UpstreamFailure
from backend.app.core.media import UploadedAsset
from backend.app.core.rate_limiter import limiter
from backend.app.main import create_app
from backend.app.models import Base, Image, User, Video

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"media-vault-test-signing-secret!").decode("ascii")


class FakeMediaStore:
    """In-memory stand-in for the Cloudinary store."""

    def __init__(self) -> None:
        self.assets: dict[str, bytes] = {}
        self.destroyed: list[tuple[str, str]] = []
        self.fail_upload = False
        self.fail_destroy = False
        self._counter = 0

    def _next_id(self, folder: str) -> str:
        self._counter += 1
        return f"{folder}/asset{self._counter}"

    def upload_video(self, stream) -> UploadedAsset:  # noqa: ANN001 - file-like
        if self.fail_upload:
            raise UpstreamFailure("Upload video failed")
        data = stream.read()
        public_id = self._next_id("vault-videos")
        self.assets[public_id] = data
        return UploadedAsset(public_id=public_id, bytes=max(len(data) // 4, 1), duration=12.5)

    def upload_image(self, stream) -> UploadedAsset:  # noqa: ANN001 - file-like
        if self.fail_upload:
            raise UpstreamFailure("Upload image failed")
        data = stream.read()
        public_id = self._next_id("images")
        self.assets[public_id] = data
        return UploadedAsset(public_id=public_id, bytes=len(data), width=640, height=480)

    def destroy(self, public_id: str, *, resource_type: str) -> None:
        if self.fail_destroy:
            raise UpstreamFailure(f"Failed to delete {resource_type}")
        self.assets.pop(public_id, None)
        self.destroyed.append((public_id, resource_type))


class FakeClerk:
    """Records Backend API calls and serves profiles from memory."""

    def __init__(self) -> None:
        self.profiles: dict[str, IdentityProfile] = {}
        self.lookups: list[str] = []
        self.completed: list[str] = []

    def add(self, clerk_id: str, email: str, *, onboarding_complete: bool = False) -> None:
        self.profiles[clerk_id] = IdentityProfile(
            id=clerk_id,
            email=email,
            public_metadata={"onboardingComplete": onboarding_complete},
        )

    async def get_user(self, user_id: str) -> IdentityProfile:
        self.lookups.append(user_id)
        profile = self.profiles.get(user_id)
        if profile is None:
            raise UpstreamFailure("Identity provider request failed")
        return profile

    async def mark_onboarding_complete(self, user_id: str) -> None:
        self.completed.append(user_id)
        profile = self.profiles.get(user_id)
        if profile is not None:
            self.profiles[user_id] = IdentityProfile(
                id=profile.id,
                email=profile.email,
                public_metadata={**profile.public_metadata, "onboardingComplete": True},
            )


class FakeVerifier:
    """Maps opaque test tokens to session claims."""

    def __init__(self) -> None:
        self.tokens: dict[str, SessionClaims] = {}

    def issue(self, clerk_id: str, *, onboarding_complete: bool = True) -> dict[str, str]:
        token = f"token-{clerk_id}-{uuid.uuid4().hex[:8]}"
        self.tokens[token] = SessionClaims(subject=clerk_id, onboarding_complete=onboarding_complete)
        return {"Authorization": f"Bearer {token}"}

    async def verify(self, token: str) -> SessionClaims:
        try:
            return self.tokens[token]
        except KeyError:
            raise InvalidSessionToken("unknown token") from None


@pytest.fixture()
def engine() -> Iterator:
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _sqlite_setup(dbapi_connection, _):  # pragma: no cover - sqlite setup
        dbapi_connection.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


def _session_ctx(factory: sessionmaker):
    def _get_session() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _get_session


@pytest.fixture()
def fake_media(monkeypatch: pytest.MonkeyPatch) -> FakeMediaStore:
    store = FakeMediaStore()

    monkeypatch.setattr(media_module, "get_media_store", lambda: store)
    monkeypatch.setattr(routes_videos, "get_media_store", lambda: store)
    monkeypatch.setattr(routes_images, "get_media_store", lambda: store)
    return store


@pytest.fixture()
def fake_clerk(monkeypatch: pytest.MonkeyPatch) -> FakeClerk:
    client = FakeClerk()
    monkeypatch.setattr(clerk_module, "get_clerk_client", lambda: client)
    return client


@pytest.fixture()
def verifier() -> Iterator[FakeVerifier]:
    fake = FakeVerifier()
    set_session_verifier(fake)
    try:
        yield fake
    finally:
        set_session_verifier(None)


@pytest.fixture()
def app(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: sessionmaker,
    fake_media: FakeMediaStore,
    fake_clerk: FakeClerk,
    verifier: FakeVerifier,
) -> TestClient:
    monkeypatch.setattr(db_module, "SessionLocal", session_factory)
    monkeypatch.setattr(limiter, "enabled", False)
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", WEBHOOK_SECRET)

    app = create_app()
    app.dependency_overrides[db_module.get_session] = _session_ctx(session_factory)
    return TestClient(app)


@pytest.fixture()
def alice(session_factory, verifier: FakeVerifier, fake_clerk: FakeClerk) -> dict[str, Any]:
    """An onboarded user with a valid session."""

    return _make_user(session_factory, verifier, fake_clerk, "user_alice", "alice@example.com", "alice")


@pytest.fixture()
def bob(session_factory, verifier: FakeVerifier, fake_clerk: FakeClerk) -> dict[str, Any]:
    return _make_user(session_factory, verifier, fake_clerk, "user_bob", "bob@example.com", "bob")


def _make_user(session_factory, verifier, fake_clerk, clerk_id, email, username) -> dict[str, Any]:
    with session_factory() as session:
        user = User(clerk_id=clerk_id, email=email, username=username)
        session.add(user)
        session.commit()
        user_id = user.id
    fake_clerk.add(clerk_id, email, onboarding_complete=True)
    return {"id": user_id, "clerk_id": clerk_id, "headers": verifier.issue(clerk_id)}


@pytest.fixture()
def make_video(session_factory):
    def _make(owner_id: uuid.UUID, title: str = "Holiday", **fields: Any) -> uuid.UUID:
        with session_factory() as session:
            video = Video(
                title=title,
                description=fields.get("description", "Beach day"),
                public_id=fields.get("public_id", f"vault-videos/{uuid.uuid4().hex}"),
                original_size=fields.get("original_size", 4_000_000),
                compressed_size=fields.get("compressed_size", 1_000_000),
                duration=fields.get("duration", 42.0),
                user_id=owner_id,
            )
            session.add(video)
            session.commit()
            return video.id

    return _make


@pytest.fixture()
def make_image(session_factory):
    def _make(owner_id: uuid.UUID, title: str = "Sunset", **fields: Any) -> uuid.UUID:
        with session_factory() as session:
            image = Image(
                title=title,
                public_id=fields.get("public_id", f"images/{uuid.uuid4().hex}"),
                width=fields.get("width", 1920),
                height=fields.get("height", 1080),
                user_id=owner_id,
            )
            session.add(image)
            session.commit()
            return image.id

    return _make


def upload_file(name: str, content_type: str, data: bytes = b"\x00\x01binary-media") -> dict[str, Any]:
    return {"file": (name, io.BytesIO(data), content_type)}


def svix_headers(body: bytes, *, secret: str = WEBHOOK_SECRET, msg_id: str | None = None) -> dict[str, str]:
    """Sign ``body`` the way svix does: HMAC-SHA256 over ``id.timestamp.body``."""

    msg_id = msg_id or f"msg_{uuid.uuid4().hex}"
    timestamp = str(int(time.time()))
    key = base64.b64decode(secret.split("_", 1)[1])
    digest = hmac.new(key, f"{msg_id}.{timestamp}.".encode("utf-8") + body, hashlib.sha256).digest()
    return {
        "svix-id": msg_id,
        "svix-timestamp": timestamp,
        "svix-signature": "v1," + base64.b64encode(digest).decode("ascii"),
        "content-type": "application/json",
    }
