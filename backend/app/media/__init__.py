"""Delivery URL helpers for Cloudinary-hosted media."""

from .urls import SOCIAL_FORMATS, SocialFormat, image_url, social_image_url, video_urls

__all__ = ["SOCIAL_FORMATS", "SocialFormat", "image_url", "social_image_url", "video_urls"]
