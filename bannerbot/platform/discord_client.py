"""discord.py adapter for message history, guild edits and gateway events."""

from __future__ import annotations

from typing import AsyncIterator, Protocol

import discord
from loguru import logger

from bannerbot.errors import (
    DiscoveryError,
    RemoteNotFound,
    RemotePermission,
    RemoteRejected,
    RemoteTransient,
    RunFailure,
)
from bannerbot.models import Attachment, SourceMessage


class GatewayEvents(Protocol):
    """Callbacks invoked by :class:`BannerBotClient` on gateway events."""

    async def on_first_ready(self) -> None: ...

    async def on_reconnected(self) -> None: ...

    async def on_tenant_removed(self, tenant_id: int) -> None: ...

    async def on_channel_deleted(self, tenant_id: int, channel_id: int) -> None: ...


def default_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    return intents


def translate_http_error(exc: discord.HTTPException, message: str) -> RunFailure:
    """Map a Discord API error onto the failure taxonomy."""

    if isinstance(exc, discord.Forbidden):
        return RemotePermission(f"{message}: {exc}")
    if isinstance(exc, discord.NotFound):
        return RemoteNotFound(f"{message}: {exc}")
    if exc.status >= 500:
        return RemoteTransient(f"{message}: {exc}")
    return RemoteRejected(f"{message}: {exc}")


def to_source_message(message: discord.Message) -> SourceMessage:
    # Embed thumbnails are skipped; fetching them would hit third-party hosts.
    return SourceMessage(
        tenant_id=message.guild.id if message.guild else 0,
        message_id=message.id,
        jump_url=message.jump_url,
        attachments=tuple(
            Attachment(url=attachment.url, content_type=attachment.content_type)
            for attachment in message.attachments
        ),
        embed_image_urls=tuple(embed.image.url for embed in message.embeds if embed.image and embed.image.url),
    )


class BannerBotClient(discord.Client):
    """Gateway client that forwards lifecycle events to a :class:`GatewayEvents`."""

    def __init__(self, events: GatewayEvents | None = None, *, intents: discord.Intents | None = None) -> None:
        super().__init__(intents=intents or default_intents())
        self.events = events
        self._ready_once = False

    async def on_ready(self) -> None:
        logger.info("Logged in as {}", self.user)
        if self.events is None:
            return
        if not self._ready_once:
            self._ready_once = True
            await self.events.on_first_ready()
        else:
            await self.events.on_reconnected()

    async def on_resumed(self) -> None:
        logger.info("Gateway session resumed")
        if self.events is not None and self._ready_once:
            await self.events.on_reconnected()

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info("Removed from guild {} ({})", guild.name, guild.id)
        if self.events is not None:
            await self.events.on_tenant_removed(guild.id)

    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        if self.events is not None:
            await self.events.on_channel_deleted(channel.guild.id, channel.id)


class DiscordPlatform:
    """Implements media source, banner sink and notifier on a discord.py client."""

    def __init__(self, client: discord.Client, *, operator_ids: list[int] | None = None) -> None:
        self.client = client
        self.operator_ids = list(operator_ids or [])

    async def history(self, source_id: int, limit: int) -> AsyncIterator[SourceMessage]:
        try:
            channel = self.client.get_channel(source_id) or await self.client.fetch_channel(source_id)
            if not isinstance(channel, discord.abc.Messageable):
                raise DiscoveryError(f"Channel {source_id} has no message history")
            async for message in channel.history(limit=limit):
                yield to_source_message(message)
        except discord.HTTPException as exc:
            failure = translate_http_error(exc, f"Reading history of {source_id} failed")
            if isinstance(failure, (RemotePermission, RemoteNotFound)):
                raise failure from exc
            raise DiscoveryError(str(failure)) from exc
        except OSError as exc:
            raise DiscoveryError(f"Reading history of {source_id} failed: {exc}") from exc

    async def _guild(self, tenant_id: int) -> discord.Guild:
        guild = self.client.get_guild(tenant_id)
        if guild is not None:
            return guild
        try:
            return await self.client.fetch_guild(tenant_id)
        except discord.HTTPException as exc:
            raise translate_http_error(exc, f"Fetching guild {tenant_id} failed") from exc
        except OSError as exc:
            raise RemoteTransient(f"Fetching guild {tenant_id} failed: {exc}") from exc

    async def features(self, tenant_id: int) -> frozenset[str]:
        guild = await self._guild(tenant_id)
        return frozenset(guild.features)

    async def set_banner(self, tenant_id: int, image: bytes, extension: str) -> None:
        await self._edit(tenant_id, banner=image)

    async def set_icon(self, tenant_id: int, image: bytes, extension: str) -> None:
        await self._edit(tenant_id, icon=image)

    async def _edit(self, tenant_id: int, **fields: bytes) -> None:
        guild = await self._guild(tenant_id)
        try:
            await guild.edit(reason="Scheduled banner rotation", **fields)
        except discord.HTTPException as exc:
            raise translate_http_error(exc, f"Editing guild {tenant_id} failed") from exc
        except OSError as exc:
            raise RemoteTransient(f"Editing guild {tenant_id} failed: {exc}") from exc

    async def dm_user(self, user_id: int, content: str) -> None:
        user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
        await user.send(content)

    async def notify_owner(self, tenant_id: int, message: str) -> None:
        guild = await self._guild(tenant_id)
        if guild.owner_id is None:
            logger.warning("Guild {} has no known owner; dropping notification", tenant_id)
            return
        await self.dm_user(guild.owner_id, f"**{guild.name}**: {message}")

    async def alert_operators(self, message: str) -> None:
        if not self.operator_ids:
            logger.warning("No operators configured for alert: {}", message)
            return
        for operator_id in self.operator_ids:
            await self.dm_user(operator_id, message)

    async def broadcast_to_owners(self, tenant_ids: list[int], message: str) -> int:
        """DM each owner once, listing their servers; returns the number of owners reached."""

        guilds_by_owner: dict[int, list[str]] = {}
        for tenant_id in tenant_ids:
            guild = await self._guild(tenant_id)
            if guild.owner_id is None:
                continue
            guilds_by_owner.setdefault(guild.owner_id, []).append(guild.name)

        for owner_id, names in guilds_by_owner.items():
            content = (
                "**Hey there!**\n"
                f"You are using this bot inside of these servers: {', '.join(names)}\n"
                f"{message}"
            )
            logger.info("Sending DM to {}", owner_id)
            await self.dm_user(owner_id, content)
        return len(guilds_by_owner)


__all__ = [
    "BannerBotClient",
    "DiscordPlatform",
    "GatewayEvents",
    "default_intents",
    "to_source_message",
    "translate_http_error",
]
