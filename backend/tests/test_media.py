from __future__ import annotations

import asyncio
import io
import json
from typing import Any

import cloudinary.exceptions
import cloudinary.uploader
import httpx
import pytest

from backend.app.auth.clerk import ClerkClient, primary_email
from backend.app.core.config import settings
from backend.app.core.errors import InternalError, UpstreamFailure
from backend.app.core.media import VIDEO_TRANSFORMATION, CloudinaryStore
from backend.app.media import SOCIAL_FORMATS, image_url, social_image_url, video_urls


def _store(**credentials: Any) -> CloudinaryStore:
    options = {"cloud_name": "demo", "api_key": "key", "api_secret": "secret"}
    options.update(credentials)
    return CloudinaryStore(
        options["cloud_name"],
        options["api_key"],
        options["api_secret"],
        video_folder="vault-videos",
        image_folder="images",
        chunk_size=1024,
    )


@pytest.mark.parametrize("result", ["ok", "not found"])
def test_destroy_accepts_gone_results(result: str, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, dict[str, Any]]] = []

    def _destroy(public_id: str, **options: Any) -> dict[str, str]:
        calls.append((public_id, options))
        return {"result": result}

    monkeypatch.setattr(cloudinary.uploader, "destroy", _destroy)

    _store().destroy("vault-videos/abc", resource_type="video")
    assert calls[0][0] == "vault-videos/abc"
    assert calls[0][1]["resource_type"] == "video"


def test_destroy_raises_on_unexpected_result(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id, **_: {"result": "error"})

    with pytest.raises(UpstreamFailure):
        _store().destroy("images/abc", resource_type="image")


def test_destroy_wraps_sdk_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(public_id: str, **_: Any) -> None:
        raise cloudinary.exceptions.Error("rate limited")

    monkeypatch.setattr(cloudinary.uploader, "destroy", _boom)

    with pytest.raises(UpstreamFailure):
        _store().destroy("images/abc", resource_type="image")


def test_unconfigured_store_refuses_work() -> None:
    store = _store(api_secret=None)

    assert store.configured is False
    with pytest.raises(InternalError):
        store.upload_image(io.BytesIO(b"data"))
    with pytest.raises(InternalError):
        store.destroy("images/abc", resource_type="image")


def test_video_upload_requests_optimised_delivery(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def _upload_large(stream, **options: Any) -> dict[str, Any]:
        captured.update(options)
        return {"public_id": "vault-videos/new", "bytes": 2048, "duration": 3.25}

    monkeypatch.setattr(cloudinary.uploader, "upload_large", _upload_large)

    asset = _store().upload_video(io.BytesIO(b"frames"))
    assert asset.public_id == "vault-videos/new"
    assert asset.bytes == 2048
    assert asset.duration == 3.25
    assert captured["resource_type"] == "video"
    assert captured["folder"] == "vault-videos"
    assert captured["transformation"] == VIDEO_TRANSFORMATION
    assert captured["chunk_size"] == 1024


def test_image_upload_reads_dimensions(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cloudinary.uploader,
        "upload",
        lambda stream, **_: {"public_id": "images/new", "bytes": 10, "width": 800, "height": 600},
    )

    asset = _store().upload_image(io.BytesIO(b"pixels"))
    assert (asset.width, asset.height) == (800, 600)


def test_urls_need_a_cloud_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", None)

    assert image_url("images/a") is None
    assert video_urls("vault-videos/a") == {"url": None, "thumbnail_url": None, "preview_url": None}


def test_video_urls(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", "demo")

    urls = video_urls("vault-videos/a")
    assert urls["url"].startswith("https://res.cloudinary.com/demo/video/upload/")
    assert urls["thumbnail_url"].endswith("vault-videos/a.jpg")
    assert "w_400" in urls["thumbnail_url"] and "h_300" in urls["thumbnail_url"]
    assert "e_preview:duration_15:max_seg_9:min_seg_dur_1" in urls["preview_url"]


def test_social_url_uses_format_dimensions(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "CLOUDINARY_CLOUD_NAME", "demo")

    url = social_image_url("images/a", SOCIAL_FORMATS["instagram-portrait"])
    assert "w_1080" in url and "h_1350" in url and "g_auto" in url
    assert url.endswith("images/a.png")


def test_primary_email_selection() -> None:
    addresses = [
        {"id": "idn_1", "email_address": "first@example.com"},
        {"id": "idn_2", "email_address": "second@example.com"},
    ]
    assert primary_email(addresses, "idn_2") == "second@example.com"
    assert primary_email(addresses, "idn_missing") == "first@example.com"
    assert primary_email([], None) == ""


def _clerk(handler) -> ClerkClient:
    return ClerkClient("https://api.clerk.test", "sk_test", transport=httpx.MockTransport(handler))


def test_clerk_get_user() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "user_alice",
                "email_addresses": [{"id": "idn_1", "email_address": "alice@example.com"}],
                "primary_email_address_id": "idn_1",
                "public_metadata": {"onboardingComplete": True},
            },
        )

    profile = asyncio.run(_clerk(handler).get_user("user_alice"))
    assert profile.email == "alice@example.com"
    assert profile.onboarding_complete is True
    assert seen[0].url.path == "/v1/users/user_alice"
    assert seen[0].headers["authorization"] == "Bearer sk_test"


def test_clerk_mark_onboarding_complete() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "user_alice"})

    asyncio.run(_clerk(handler).mark_onboarding_complete("user_alice"))
    assert seen[0].method == "PATCH"
    assert seen[0].url.path == "/v1/users/user_alice/metadata"
    assert json.loads(seen[0].content) == {"public_metadata": {"onboardingComplete": True}}


def test_clerk_errors_become_upstream_failures() -> None:
    client = _clerk(lambda request: httpx.Response(404, json={"errors": []}))

    with pytest.raises(UpstreamFailure):
        asyncio.run(client.get_user("user_missing"))


def test_clerk_requires_secret_key() -> None:
    client = ClerkClient("https://api.clerk.test", None)

    with pytest.raises(InternalError):
        asyncio.run(client.get_user("user_alice"))
