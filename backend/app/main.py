"""FastAPI application entry point for the media vault."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .api import routes_admin, routes_identity, routes_images, routes_videos, routes_webhooks
from .core.config import settings
from .core.errors import register_error_handlers
from .core.middleware import OnboardingGateMiddleware, RequestLoggingMiddleware
from .core.rate_limiter import limiter, rate_limit_handler


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    _configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]
    register_error_handlers(app)

    # Added innermost first: requests pass logging, CORS, the gate, then rate limits.
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(OnboardingGateMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL.rstrip("/")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(routes_videos.router, prefix="/content/videos", tags=["videos"])
    app.include_router(routes_images.router, prefix="/content/images", tags=["images"])
    app.include_router(routes_identity.router, prefix="/identity", tags=["identity"])
    app.include_router(routes_webhooks.router, prefix="/identity", tags=["webhooks"])

    @app.get("/", tags=["admin"], summary="Service banner")
    async def root() -> dict[str, str]:
        """Return the service name for smoke tests."""
        return {"service": settings.PROJECT_NAME, "version": settings.VERSION}

    return app


app = create_app()
