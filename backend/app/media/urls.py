"""Build Cloudinary delivery URLs for stored assets.

URLs are derived purely from the public id and the configured cloud name, so
nothing here talks to Cloudinary. When no cloud name is configured every
builder returns ``None``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cloudinary.utils import cloudinary_url

from ..core.config import settings

PREVIEW_EFFECT = "e_preview:duration_15:max_seg_9:min_seg_dur_1"


@dataclass(frozen=True)
class SocialFormat:
    slug: str
    label: str
    width: int
    height: int
    aspect_ratio: str


SOCIAL_FORMATS: dict[str, SocialFormat] = {
    fmt.slug: fmt
    for fmt in (
        SocialFormat("instagram-square", "Instagram Square (1:1)", 1080, 1080, "1:1"),
        SocialFormat("instagram-portrait", "Instagram Portrait (4:5)", 1080, 1350, "4:5"),
        SocialFormat("twitter-post", "Twitter Post (16:9)", 1200, 675, "16:9"),
        SocialFormat("twitter-header", "Twitter Header (3:1)", 1500, 500, "3:1"),
        SocialFormat("facebook-cover", "Facebook Cover (205:78)", 820, 312, "205:78"),
    )
}


def _build(public_id: str, **options: Any) -> str | None:
    cloud_name = settings.CLOUDINARY_CLOUD_NAME
    if not cloud_name:
        return None
    url, _ = cloudinary_url(public_id, cloud_name=cloud_name, secure=True, **options)
    return url


def video_urls(public_id: str) -> dict[str, str | None]:
    """Return the full, thumbnail and hover-preview URLs for a video."""

    return {
        "url": _build(public_id, resource_type="video"),
        "thumbnail_url": _build(
            public_id,
            resource_type="video",
            width=400,
            height=300,
            crop="fill",
            gravity="auto",
            quality="auto",
            format="jpg",
        ),
        "preview_url": _build(
            public_id,
            resource_type="video",
            width=400,
            height=225,
            raw_transformation=PREVIEW_EFFECT,
        ),
    }


def image_url(public_id: str) -> str | None:
    return _build(public_id, resource_type="image")


def social_image_url(public_id: str, fmt: SocialFormat) -> str | None:
    """Return a URL cropping the image to fill ``fmt`` around its subject."""

    return _build(
        public_id,
        resource_type="image",
        width=fmt.width,
        height=fmt.height,
        crop="fill",
        gravity="auto",
        format="png",
    )
