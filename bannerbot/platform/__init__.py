"""Chat platform integration.

The protocols in :mod:`bannerbot.platform.base` are all the run pipeline
depends on; :mod:`bannerbot.platform.discord_client` implements them.
"""

from .base import BannerSink, MediaSource, Notifier

__all__ = ["BannerSink", "MediaSource", "Notifier"]
