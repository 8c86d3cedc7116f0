from __future__ import annotations

from types import SimpleNamespace
from typing import Any, AsyncIterator

import discord
import pytest

from bannerbot.errors import (
    DiscoveryError,
    RemoteNotFound,
    RemotePermission,
    RemoteRejected,
    RemoteTransient,
)
from bannerbot.platform.discord_client import (
    BannerBotClient,
    DiscordPlatform,
    to_source_message,
    translate_http_error,
)


def _http_error(cls: type[discord.HTTPException], status: int) -> discord.HTTPException:
    return cls(SimpleNamespace(status=status, reason="reason"), "error")


class FakeChannel(discord.abc.Messageable):
    def __init__(self, messages: list[Any]) -> None:
        self.messages = messages

    async def _get_channel(self) -> Any:
        return self

    async def history(self, *, limit: int) -> AsyncIterator[Any]:  # type: ignore[override]
        for message in self.messages[:limit]:
            yield message


class FakeGuild:
    def __init__(self, guild_id: int, owner_id: int | None = 500, features: tuple[str, ...] = ("BANNER",)) -> None:
        self.id = guild_id
        self.name = f"guild-{guild_id}"
        self.owner_id = owner_id
        self.features = list(features)
        self.edits: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def edit(self, **fields: Any) -> None:
        if self.error is not None:
            raise self.error
        self.edits.append(fields)


class FakeUser:
    def __init__(self, user_id: int, sent: list[tuple[int, str]]) -> None:
        self.id = user_id
        self._sent = sent

    async def send(self, content: str) -> None:
        self._sent.append((self.id, content))


class FakeClient:
    def __init__(self) -> None:
        self.guilds: dict[int, FakeGuild] = {}
        self.channels: dict[int, Any] = {}
        self.sent: list[tuple[int, str]] = []
        self.fetch_channel_error: Exception | None = None

    def get_guild(self, guild_id: int) -> FakeGuild | None:
        return self.guilds.get(guild_id)

    async def fetch_guild(self, guild_id: int) -> FakeGuild:
        raise _http_error(discord.NotFound, 404)

    def get_channel(self, channel_id: int) -> Any:
        return self.channels.get(channel_id)

    async def fetch_channel(self, channel_id: int) -> Any:
        if self.fetch_channel_error is not None:
            raise self.fetch_channel_error
        raise _http_error(discord.NotFound, 404)

    def get_user(self, user_id: int) -> FakeUser:
        return FakeUser(user_id, self.sent)


def _message(message_id: int, *urls: str, embeds: tuple[str | None, ...] = ()) -> SimpleNamespace:
    return SimpleNamespace(
        id=message_id,
        guild=SimpleNamespace(id=1),
        jump_url=f"https://discord.com/channels/1/10/{message_id}",
        attachments=[SimpleNamespace(url=url, content_type="image/png") for url in urls],
        embeds=[SimpleNamespace(image=SimpleNamespace(url=url)) for url in embeds],
    )


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (_http_error(discord.Forbidden, 403), RemotePermission),
        (_http_error(discord.NotFound, 404), RemoteNotFound),
        (_http_error(discord.DiscordServerError, 502), RemoteTransient),
        (_http_error(discord.HTTPException, 400), RemoteRejected),
    ],
)
def test_translate_http_error(error: discord.HTTPException, expected: type) -> None:
    assert isinstance(translate_http_error(error, "editing"), expected)


def test_to_source_message_skips_embeds_without_image() -> None:
    message = to_source_message(_message(3, "https://cdn.example/a.png", embeds=("https://img.example/b.jpg", None)))  # type: ignore[arg-type]

    assert message.tenant_id == 1
    assert message.message_id == 3
    assert [attachment.url for attachment in message.attachments] == ["https://cdn.example/a.png"]
    assert message.embed_image_urls == ("https://img.example/b.jpg",)


@pytest.mark.asyncio
async def test_history_converts_messages() -> None:
    client = FakeClient()
    client.channels[10] = FakeChannel([_message(2, "https://cdn.example/new.png"), _message(1)])
    platform = DiscordPlatform(client)  # type: ignore[arg-type]

    messages = [message async for message in platform.history(10, limit=1)]

    assert [message.message_id for message in messages] == [2]


@pytest.mark.asyncio
async def test_history_of_missing_channel() -> None:
    platform = DiscordPlatform(FakeClient())  # type: ignore[arg-type]

    with pytest.raises(RemoteNotFound):
        [message async for message in platform.history(10, limit=5)]


@pytest.mark.asyncio
async def test_history_server_error_is_discovery_error() -> None:
    client = FakeClient()
    client.fetch_channel_error = _http_error(discord.DiscordServerError, 500)
    platform = DiscordPlatform(client)  # type: ignore[arg-type]

    with pytest.raises(DiscoveryError):
        [message async for message in platform.history(10, limit=5)]


@pytest.mark.asyncio
async def test_set_banner_edits_guild() -> None:
    client = FakeClient()
    client.guilds[1] = FakeGuild(1, features=("BANNER", "ANIMATED_BANNER"))
    platform = DiscordPlatform(client)  # type: ignore[arg-type]

    assert await platform.features(1) == frozenset({"BANNER", "ANIMATED_BANNER"})
    await platform.set_banner(1, b"png", "png")
    await platform.set_icon(1, b"ico", "png")

    assert client.guilds[1].edits == [
        {"reason": "Scheduled banner rotation", "banner": b"png"},
        {"reason": "Scheduled banner rotation", "icon": b"ico"},
    ]


@pytest.mark.asyncio
async def test_set_banner_without_permission() -> None:
    client = FakeClient()
    client.guilds[1] = FakeGuild(1)
    client.guilds[1].error = _http_error(discord.Forbidden, 403)
    platform = DiscordPlatform(client)  # type: ignore[arg-type]

    with pytest.raises(RemotePermission):
        await platform.set_banner(1, b"png", "png")


@pytest.mark.asyncio
async def test_unknown_guild_is_not_found() -> None:
    platform = DiscordPlatform(FakeClient())  # type: ignore[arg-type]

    with pytest.raises(RemoteNotFound):
        await platform.features(1)


@pytest.mark.asyncio
async def test_notifications() -> None:
    client = FakeClient()
    client.guilds[1] = FakeGuild(1, owner_id=500)
    client.guilds[2] = FakeGuild(2, owner_id=500)
    client.guilds[3] = FakeGuild(3, owner_id=600)
    platform = DiscordPlatform(client, operator_ids=[42])  # type: ignore[arg-type]

    await platform.notify_owner(1, "stopped")
    await platform.alert_operators("store down")
    reached = await platform.broadcast_to_owners([1, 2, 3], "maintenance tonight")

    assert client.sent[0] == (500, "**guild-1**: stopped")
    assert client.sent[1] == (42, "store down")
    assert reached == 2
    broadcast = dict(client.sent[2:])
    assert "guild-1, guild-2" in broadcast[500]
    assert broadcast[600].endswith("maintenance tonight")


class RecordingEvents:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    async def on_first_ready(self) -> None:
        self.calls.append(("first_ready",))

    async def on_reconnected(self) -> None:
        self.calls.append(("reconnected",))

    async def on_tenant_removed(self, tenant_id: int) -> None:
        self.calls.append(("tenant_removed", tenant_id))

    async def on_channel_deleted(self, tenant_id: int, channel_id: int) -> None:
        self.calls.append(("channel_deleted", tenant_id, channel_id))


@pytest.mark.asyncio
async def test_client_forwards_gateway_events() -> None:
    events = RecordingEvents()
    client = BannerBotClient(events)

    await client.on_resumed()
    await client.on_ready()
    await client.on_ready()
    await client.on_resumed()
    await client.on_guild_remove(SimpleNamespace(id=1, name="guild-1"))  # type: ignore[arg-type]
    await client.on_guild_channel_delete(SimpleNamespace(id=10, guild=SimpleNamespace(id=1)))  # type: ignore[arg-type]

    assert events.calls == [
        ("first_ready",),
        ("reconnected",),
        ("reconnected",),
        ("tenant_removed", 1),
        ("channel_deleted", 1, 10),
    ]
