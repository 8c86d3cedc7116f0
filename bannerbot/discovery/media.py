"""Find banner candidates in a channel's recent history."""

from __future__ import annotations

from typing import AsyncIterator

from loguru import logger

from bannerbot.models import Candidate, Provenance, SourceMessage
from bannerbot.platform.base import MediaSource

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {"image/png", "image/jpg", "image/jpeg", "image/gif"}
)


def media_type_is_image(content_type: str | None) -> bool:
    if not content_type:
        return False
    # Discord may append parameters, e.g. "image/png; charset=binary"
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime in ALLOWED_CONTENT_TYPES


def candidates_from_message(message: SourceMessage, source_id: int) -> list[Candidate]:
    """Collect qualifying media of one message in display order.

    Attachments need an allowed content type. Embed images qualify as-is;
    embed thumbnails are never passed in by the platform adapter.
    """

    found: list[Candidate] = []
    for attachment in message.attachments:
        if not media_type_is_image(attachment.content_type):
            continue
        found.append(
            Candidate(
                media_url=attachment.url,
                provenance=Provenance(
                    tenant_id=message.tenant_id,
                    source_id=source_id,
                    message_id=message.message_id,
                    jump_url=message.jump_url,
                    content_type=attachment.content_type,
                ),
            )
        )
    for url in message.embed_image_urls:
        found.append(
            Candidate(
                media_url=url,
                provenance=Provenance(
                    tenant_id=message.tenant_id,
                    source_id=source_id,
                    message_id=message.message_id,
                    jump_url=message.jump_url,
                ),
            )
        )
    return found


class MediaDiscovery:
    """Turns message history into a lazy, bounded stream of candidates."""

    def __init__(self, source: MediaSource) -> None:
        self.source = source

    async def discover(self, source_id: int, limit: int) -> AsyncIterator[Candidate]:
        """Yield candidates newest message first, scanning at most ``limit`` messages.

        Nothing is cached; every call scans the history again. A failure of
        the source propagates and ends the stream.
        """

        scanned = 0
        yielded = 0
        async for message in self.source.history(source_id, limit):
            scanned += 1
            for candidate in candidates_from_message(message, source_id):
                yielded += 1
                yield candidate
            if scanned >= limit:
                break
        logger.debug(
            "Scanned {} messages in {} and found {} candidates", scanned, source_id, yielded
        )

    async def collect(self, source_id: int, limit: int) -> list[Candidate]:
        return [candidate async for candidate in self.discover(source_id, limit)]


__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "MediaDiscovery",
    "candidates_from_message",
    "media_type_is_image",
]
