"""Validate, download and apply one banner candidate."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from loguru import logger

from bannerbot.errors import (
    EmptyImage,
    ImageUnreachable,
    MissingAnimatedFeature,
    MissingFeature,
    OversizeImage,
    RemoteTransient,
    UndeterminedExtension,
    UnknownSizeOverflow,
)
from bannerbot.models import Candidate, CommitResult
from bannerbot.platform.base import BannerSink

BANNER_FEATURE = "BANNER"
ANIMATED_BANNER_FEATURE = "ANIMATED_BANNER"

STATIC_EXTENSIONS = frozenset({"png", "jpg", "jpeg"})
ANIMATED_EXTENSIONS = frozenset({"gif"})

DISCORD_CDN_HOSTS = frozenset({"cdn.discordapp.com", "media.discordapp.net"})
_CDN_KEPT_PARAMS = ("ex", "is", "hm")
BANNER_WIDTH = 960
BANNER_HEIGHT = 540


def extension_from_url(url: str) -> str | None:
    """Return the lower-cased suffix of the last path segment, if it has one."""

    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." not in segment:
        return None
    extension = segment.rsplit(".", 1)[1].lower()
    return extension or None


def resize_discord_cdn_url(url: str) -> str:
    """Ask the Discord CDN for a banner-sized rendition.

    Only the signature parameters survive; other hosts are left alone.
    """

    parts = urlsplit(url)
    if parts.hostname not in DISCORD_CDN_HOSTS:
        return url
    kept = [(key, value) for key, value in parse_qsl(parts.query) if key in _CDN_KEPT_PARAMS]
    kept.extend([("width", str(BANNER_WIDTH)), ("height", str(BANNER_HEIGHT))])
    return urlunsplit(parts._replace(query=urlencode(kept)))


class BannerCommitter:
    """Turns a :class:`Candidate` into the server's banner.

    Steps run in order and stop at the first failure: feature gate,
    extension check, bounded download, commit. In dev mode the gate is
    skipped and the server icon is replaced instead of the banner.
    """

    def __init__(
        self,
        sink: BannerSink,
        http: httpx.AsyncClient,
        *,
        max_image_bytes: int,
        chunk_size: int = 64 * 1024,
        dev_mode: bool = False,
    ) -> None:
        self.sink = sink
        self.http = http
        self.max_image_bytes = max_image_bytes
        self.chunk_size = chunk_size
        self.dev_mode = dev_mode

    async def commit(self, tenant_id: int, candidate: Candidate) -> CommitResult:
        features = frozenset() if self.dev_mode else await self.sink.features(tenant_id)
        if not self.dev_mode and BANNER_FEATURE not in features:
            raise MissingFeature(f"Server {tenant_id} does not have the banner feature", candidate=candidate)

        extension = extension_from_url(candidate.media_url)
        if extension not in STATIC_EXTENSIONS | ANIMATED_EXTENSIONS:
            raise UndeterminedExtension(
                f"Could not determine an image extension for {candidate.media_url}", candidate=candidate
            )
        if not self.dev_mode and extension in ANIMATED_EXTENSIONS and ANIMATED_BANNER_FEATURE not in features:
            raise MissingAnimatedFeature(
                f"Server {tenant_id} cannot use animated banners: {candidate.media_url}", candidate=candidate
            )

        image = await self.download(candidate)

        if self.dev_mode:
            logger.debug("Setting icon of {} from {}", tenant_id, candidate.media_url)
            await self.sink.set_icon(tenant_id, image, extension)
        else:
            logger.debug("Setting banner of {} from {}", tenant_id, candidate.media_url)
            await self.sink.set_banner(tenant_id, image, extension)

        return CommitResult(
            tenant_id=tenant_id,
            media_url=candidate.media_url,
            size_bytes=len(image),
            extension=extension,
        )

    async def download(self, candidate: Candidate) -> bytes:
        """Stream the image into memory without ever holding more than the cap."""

        url = resize_discord_cdn_url(candidate.media_url)
        try:
            async with self.http.stream("GET", url) as response:
                if response.status_code >= 500:
                    raise RemoteTransient(
                        f"Media host answered {response.status_code} for {url}", candidate=candidate
                    )
                if response.status_code >= 400:
                    raise ImageUnreachable(
                        f"Media host answered {response.status_code} for {url}", candidate=candidate
                    )

                declared = _declared_length(response)
                if declared == 0:
                    raise EmptyImage(f"Image is empty: {url}", candidate=candidate)
                if declared is not None and declared > self.max_image_bytes:
                    raise OversizeImage(
                        f"Image is {declared} bytes, limit is {self.max_image_bytes}: {url}",
                        candidate=candidate,
                    )

                buffer = bytearray()
                async for chunk in response.aiter_bytes(self.chunk_size):
                    if len(buffer) + len(chunk) > self.max_image_bytes:
                        if declared is None:
                            raise UnknownSizeOverflow(
                                f"Image without declared size exceeded {self.max_image_bytes} bytes: {url}",
                                candidate=candidate,
                            )
                        raise OversizeImage(
                            f"Image exceeded {self.max_image_bytes} bytes while streaming: {url}",
                            candidate=candidate,
                        )
                    buffer.extend(chunk)
        except httpx.HTTPError as exc:
            raise RemoteTransient(f"Failed to download {url}: {exc}", candidate=candidate) from exc

        if not buffer:
            raise EmptyImage(f"Image is empty: {url}", candidate=candidate)
        return bytes(buffer)


def _declared_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


__all__ = [
    "ANIMATED_BANNER_FEATURE",
    "BANNER_FEATURE",
    "BannerCommitter",
    "extension_from_url",
    "resize_discord_cdn_url",
]
