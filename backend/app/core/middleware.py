"""Custom ASGI middleware for the onboarding gate and request logging."""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from ..auth import gate
from .config import settings
from .metrics import record_gate_decision, record_request


class OnboardingGateMiddleware(BaseHTTPMiddleware):
    """Require a session on private routes and a username before the rest of the app."""

    def __init__(self, app: Callable) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("vault.gate")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        decision = await gate.evaluate(request)
        record_gate_decision(decision.reason)

        if decision.claims is not None:
            request.state.external_id = decision.claims.subject
            request.state.session_claims = decision.claims

        if decision.outcome is gate.GateOutcome.ALLOW:
            return await call_next(request)

        path = request.url.path
        self.logger.info(
            "Gate %s for %s %s (%s)", decision.outcome.value, request.method, path, decision.reason
        )

        if decision.outcome is gate.GateOutcome.HOME:
            return _redirect(request, settings.HOME_PATH)

        if decision.outcome is gate.GateOutcome.SIGN_IN:
            if gate.is_api_route(path):
                return JSONResponse({"detail": "Unauthorized"}, status_code=status.HTTP_401_UNAUTHORIZED)
            return _redirect(request, settings.SIGN_IN_PATH)

        if gate.is_api_route(path):
            return JSONResponse(
                {"detail": "Onboarding required", "redirect": settings.ONBOARDING_PATH},
                status_code=status.HTTP_403_FORBIDDEN,
            )
        return _redirect(request, settings.ONBOARDING_PATH)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log structured request summaries and emit metrics."""

    def __init__(self, app: Callable) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("vault.request")

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        method = request.method
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            duration = time.perf_counter() - start
            route_path = _route_path(request)
            record_request(method, route_path, status_code, duration)
            self.logger.exception(
                "HTTP %s %s raised an unhandled exception", method, route_path
            )
            raise
        duration = time.perf_counter() - start
        route_path = _route_path(request)

        self.logger.info(
            "HTTP %s %s status=%s user=%s duration=%.3f",
            method,
            route_path,
            status_code,
            getattr(request.state, "external_id", None) or "anonymous",
            duration,
        )
        record_request(method, route_path, status_code, duration)
        response.headers.setdefault("X-Process-Time", f"{duration:.6f}")
        return response


def _route_path(request: Request) -> str:
    # The matched route template keeps metric label cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _redirect(request: Request, path: str) -> RedirectResponse:
    return RedirectResponse(url=str(request.url.replace(path=path, query="")))
