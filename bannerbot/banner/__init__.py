"""Applying images as server banners."""

from .committer import BannerCommitter, extension_from_url, resize_discord_cdn_url

__all__ = ["BannerCommitter", "extension_from_url", "resize_discord_cdn_url"]
