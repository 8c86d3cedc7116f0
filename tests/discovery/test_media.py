from __future__ import annotations

import pytest

from bannerbot.discovery import MediaDiscovery, candidates_from_message, media_type_is_image
from tests.fakes import FakeSource, make_message


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("image/png", True),
        ("image/jpeg", True),
        ("image/jpg", True),
        ("image/gif", True),
        ("IMAGE/PNG; charset=binary", True),
        ("image/webp", False),
        ("video/mp4", False),
        (None, False),
        ("", False),
    ],
)
def test_media_type_filter(content_type: str | None, expected: bool) -> None:
    assert media_type_is_image(content_type) is expected


def test_candidates_keep_message_order_and_provenance() -> None:
    message = make_message(
        5,
        "https://cdn.example/a.png",
        "https://cdn.example/b.png",
        tenant_id=3,
        embeds=("https://img.example/embed.jpg",),
    )

    candidates = candidates_from_message(message, source_id=10)

    assert [c.media_url for c in candidates] == [
        "https://cdn.example/a.png",
        "https://cdn.example/b.png",
        "https://img.example/embed.jpg",
    ]
    assert candidates[0].provenance.message_id == 5
    assert candidates[0].provenance.tenant_id == 3
    assert candidates[0].provenance.content_type == "image/png"
    assert candidates[2].provenance.content_type is None


def test_attachments_with_other_types_are_skipped() -> None:
    message = make_message(1, "https://cdn.example/clip.mp4", content_type="video/mp4")
    assert candidates_from_message(message, source_id=10) == []


@pytest.mark.asyncio
async def test_discover_yields_newest_first() -> None:
    source = FakeSource(
        {
            10: [
                make_message(3, "https://cdn.example/new.png"),
                make_message(2),
                make_message(1, "https://cdn.example/old.png"),
            ]
        }
    )

    found = await MediaDiscovery(source).collect(10, limit=50)

    assert [c.media_url for c in found] == ["https://cdn.example/new.png", "https://cdn.example/old.png"]
    assert source.calls == [(10, 50)]


@pytest.mark.asyncio
async def test_discover_respects_limit() -> None:
    source = FakeSource({10: [make_message(i, f"https://cdn.example/{i}.png") for i in range(5, 0, -1)]})

    found = await MediaDiscovery(source).collect(10, limit=2)

    assert [c.media_url for c in found] == ["https://cdn.example/5.png", "https://cdn.example/4.png"]
    assert source.messages_served == 2


@pytest.mark.asyncio
async def test_discover_is_lazy() -> None:
    source = FakeSource({10: [make_message(i, f"https://cdn.example/{i}.png") for i in range(5, 0, -1)]})
    stream = MediaDiscovery(source).discover(10, limit=5)

    first = await stream.__anext__()
    await stream.aclose()

    assert first.media_url == "https://cdn.example/5.png"
    assert source.messages_served == 1


@pytest.mark.asyncio
async def test_discover_propagates_source_failure() -> None:
    source = FakeSource()
    source.error = RuntimeError("history unavailable")

    with pytest.raises(RuntimeError, match="history unavailable"):
        await MediaDiscovery(source).collect(10, limit=5)
