"""API package exports."""
from . import routes_admin, routes_identity, routes_images, routes_videos, routes_webhooks

__all__ = [
    "routes_admin",
    "routes_identity",
    "routes_images",
    "routes_videos",
    "routes_webhooks",
]
