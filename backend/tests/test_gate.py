from __future__ import annotations

import asyncio
from typing import Any

import pytest
from starlette.requests import Request

from backend.app.auth import gate


@pytest.fixture()
def pages(app: Any) -> Any:
    """Register stand-in page routes so redirects have somewhere to land."""

    for path in ("/dashboard", "/onboarding", "/sign-in", "/home"):
        app.app.add_api_route(path, lambda: {"page": "ok"}, methods=["GET"])
    return app


def _request(path: str, headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": path, "headers": raw_headers, "query_string": b""})


@pytest.mark.parametrize(
    "path, expected",
    [("/content/videos", True), ("/identity/me", True), ("/contents", False), ("/dashboard", False)],
)
def test_api_route_classification(path: str, expected: bool) -> None:
    assert gate.is_api_route(path) is expected


def test_onboarding_route_classification() -> None:
    assert gate.is_onboarding_route("/onboarding")
    assert gate.is_onboarding_route("/identity/onboarding")
    assert gate.is_onboarding_route("/identity/me/")
    assert not gate.is_onboarding_route("/content/videos")


def test_public_routes() -> None:
    assert gate.is_public_route("/identity/webhook")
    assert gate.is_public_route("/sign-in/factor-one")
    assert not gate.is_public_route("/content/videos")


def test_fresh_claims_skip_backend_lookup(pages: Any, alice, fake_clerk) -> None:
    response = pages.get("/content/videos", headers=alice["headers"])
    assert response.status_code == 200
    assert fake_clerk.lookups == []


def test_stale_claims_pass_after_backend_lookup(pages: Any, verifier, fake_clerk) -> None:
    fake_clerk.add("user_stale", "stale@example.com", onboarding_complete=True)
    headers = verifier.issue("user_stale", onboarding_complete=False)

    response = pages.get("/dashboard", headers=headers)
    assert response.status_code == 200
    assert fake_clerk.lookups == ["user_stale"]


def test_incomplete_api_request_gets_json_403(pages: Any, verifier, fake_clerk) -> None:
    fake_clerk.add("user_new", "new@example.com")
    headers = verifier.issue("user_new", onboarding_complete=False)

    response = pages.get("/content/images", headers=headers)
    assert response.status_code == 403
    assert response.json() == {"detail": "Onboarding required", "redirect": "/onboarding"}


def test_incomplete_page_request_redirects_to_onboarding(pages: Any, verifier, fake_clerk) -> None:
    fake_clerk.add("user_new", "new@example.com")
    headers = verifier.issue("user_new", onboarding_complete=False)

    response = pages.get("/dashboard?tab=videos", headers=headers, follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].endswith("/onboarding")


def test_failed_lookup_counts_as_incomplete(pages: Any, verifier, fake_clerk) -> None:
    headers = verifier.issue("user_unknown_to_clerk", onboarding_complete=False)

    response = pages.get("/dashboard", headers=headers, follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].endswith("/onboarding")


def test_onboarding_routes_are_reachable_before_onboarding(pages: Any, verifier, fake_clerk) -> None:
    headers = verifier.issue("user_new", onboarding_complete=False)

    assert pages.get("/onboarding", headers=headers).status_code == 200
    assert fake_clerk.lookups == []


def test_missing_session_redirects_page_to_sign_in(pages: Any) -> None:
    response = pages.get("/dashboard", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].endswith("/sign-in")


def test_invalid_token_is_treated_as_signed_out(pages: Any) -> None:
    response = pages.get("/content/videos", headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401


def test_signed_in_user_is_sent_home_from_sign_in(pages: Any, alice) -> None:
    response = pages.get("/sign-in", headers=alice["headers"], follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].endswith("/home")


def test_sign_in_page_is_public(pages: Any) -> None:
    assert pages.get("/sign-in").status_code == 200


def test_session_cookie_is_accepted(pages: Any, alice) -> None:
    token = alice["headers"]["Authorization"].split(" ", 1)[1]
    pages.cookies.set("__session", token)

    assert pages.get("/content/videos").status_code == 200


def test_public_endpoints_need_no_session(pages: Any) -> None:
    assert pages.get("/").status_code == 200
    assert pages.get("/admin/health").json() == {"status": "ok", "database": "ok"}
    assert pages.get("/admin/metrics").status_code == 200


def test_evaluate_reports_reason(verifier, fake_clerk) -> None:
    fake_clerk.add("user_stale", "stale@example.com", onboarding_complete=True)
    headers = verifier.issue("user_stale", onboarding_complete=False)

    decision = asyncio.run(gate.evaluate(_request("/content/videos", headers)))
    assert decision.outcome is gate.GateOutcome.ALLOW
    assert decision.reason == "backend"
    assert decision.claims.subject == "user_stale"
