"""Narrow interfaces the run pipeline needs from the chat platform."""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from bannerbot.models import SourceMessage


class MediaSource(Protocol):
    def history(self, source_id: int, limit: int) -> AsyncIterator[SourceMessage]:
        """Yield up to ``limit`` messages of ``source_id``, newest first.

        Raises :class:`~bannerbot.errors.DiscoveryError` (or the more specific
        permission / not-found failures) when the history cannot be read.
        """


class BannerSink(Protocol):
    async def features(self, tenant_id: int) -> frozenset[str]:
        """Return the server's feature flags, such as ``BANNER``."""

    async def set_banner(self, tenant_id: int, image: bytes, extension: str) -> None:
        """Replace the server banner with ``image``."""

    async def set_icon(self, tenant_id: int, image: bytes, extension: str) -> None:
        """Replace the server icon with ``image``."""


class Notifier(Protocol):
    async def notify_owner(self, tenant_id: int, message: str) -> None:
        """Tell the owner of ``tenant_id`` something went wrong with their schedule."""

    async def alert_operators(self, message: str) -> None:
        """Report a critical failure to the bot operators."""


__all__ = ["BannerSink", "MediaSource", "Notifier"]
