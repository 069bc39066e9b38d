# tests/test_media/test_progress_channel.py

import asyncio
import json

import pytest

from app.schemas.enums import ProgressStage
from app.schemas.media import CompleteEvent, ErrorEvent, ProgressEvent
from app.services.media.progress import ProgressChannel, clamp_percent, encode_sse

pytestmark = pytest.mark.anyio


async def _collect(channel: ProgressChannel):
    return [e async for e in channel.events()]


@pytest.mark.parametrize(
    "raw, expected",
    [(-5, 0), (0, 0), (12.4, 12), (57.6, 58), (100, 100), (140.0, 100), (float("nan"), 0), ("x", 0)],
)
def test_clamp_percent(raw, expected):
    assert clamp_percent(raw) == expected


def test_encode_sse_frames():
    assert (
        encode_sse(ProgressEvent(stage=ProgressStage.CONVERTING, percent=0))
        == 'data: {"type":"progress","stage":"converting","percent":0}\n\n'
    )
    frame = encode_sse(CompleteEvent(message="Teaser uploaded (3 segments).", teaser_url="https://x/m"))
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {
        "type": "complete",
        "message": "Teaser uploaded (3 segments).",
        "teaserUrl": "https://x/m",
    }
    assert json.loads(encode_sse(ErrorEvent(message="boom"))[6:]) == {"type": "error", "message": "boom"}


async def test_events_are_ordered_clamped_and_monotonic():
    channel = ProgressChannel()
    consumer = asyncio.ensure_future(_collect(channel))

    assert await channel.progress(ProgressStage.CONVERTING, 0)
    assert await channel.progress(ProgressStage.CONVERTING, 12.4)
    assert await channel.progress(ProgressStage.CONVERTING, 140.0)
    assert not await channel.progress(ProgressStage.CONVERTING, 50)   # backwards within a stage
    assert await channel.progress(ProgressStage.UPLOADING, 100)
    assert not await channel.progress(ProgressStage.CONVERTING, 99)   # backwards across stages
    assert await channel.complete("done", data={"id": 1})

    events = await asyncio.wait_for(consumer, timeout=2)
    assert [(e.type.value, getattr(e, "stage", None), getattr(e, "percent", None)) for e in events] == [
        ("progress", ProgressStage.CONVERTING, 0),
        ("progress", ProgressStage.CONVERTING, 12),
        ("progress", ProgressStage.CONVERTING, 100),
        ("progress", ProgressStage.UPLOADING, 100),
        ("complete", None, None),
    ]


async def test_exactly_one_terminal_event():
    channel = ProgressChannel()
    consumer = asyncio.ensure_future(_collect(channel))

    assert await channel.error("Video conversion failed: bad input")
    assert not await channel.complete("late")
    assert not await channel.error("later")

    events = await asyncio.wait_for(consumer, timeout=2)
    assert len(events) == 1
    assert events[0].message == "Video conversion failed: bad input"
    assert channel.terminated


async def test_emit_waits_for_the_consumer_to_move_on():
    channel = ProgressChannel()
    agen = channel.events()
    producer = asyncio.ensure_future(channel.progress(ProgressStage.CONVERTING, 5))

    first = await asyncio.wait_for(agen.__anext__(), timeout=2)
    assert first.percent == 5
    await asyncio.sleep(0.02)
    # the frame has been handed out but the consumer has not resumed yet
    assert not producer.done()

    await agen.aclose()
    assert await asyncio.wait_for(producer, timeout=2) is True
    assert channel.detached


async def test_detach_releases_a_blocked_producer_and_notifies():
    notified = []
    channel = ProgressChannel(on_detach=lambda: notified.append(True))
    producer = asyncio.ensure_future(channel.progress(ProgressStage.CONVERTING, 0))
    await asyncio.sleep(0.01)
    assert not producer.done()

    channel.detach()
    assert await asyncio.wait_for(producer, timeout=2) is False
    assert notified == [True]

    # later emits do not block and are still recorded
    assert await channel.error("nobody listening") is False
    assert [e.type.value for e in channel.sent] == ["progress", "error"]


async def test_detach_after_terminal_does_not_notify():
    notified = []
    channel = ProgressChannel(on_detach=lambda: notified.append(True))
    consumer = asyncio.ensure_future(_collect(channel))
    await channel.complete("ok")
    await asyncio.wait_for(consumer, timeout=2)
    assert channel.detached
    assert notified == []


async def test_abort_queues_a_terminal_error_without_waiting():
    channel = ProgressChannel()
    channel.abort("Upload interrupted: server is shutting down")
    channel.abort("second abort is ignored")
    events = await asyncio.wait_for(_collect(channel), timeout=2)
    assert [e.message for e in events] == ["Upload interrupted: server is shutting down"]


async def test_sse_yields_frames_until_terminal():
    channel = ProgressChannel()

    async def produce():
        await channel.progress(ProgressStage.CONVERTING, 0)
        await channel.progress(ProgressStage.UPLOADING, 100)
        await channel.complete("Teaser uploaded (2 segments).", teaser_url="https://b/short_films/teaser/output.manifest")

    producer = asyncio.ensure_future(produce())
    frames = [f async for f in channel.sse()]
    await asyncio.wait_for(producer, timeout=2)

    payloads = [json.loads(f[len("data: "):]) for f in frames]
    assert [p["type"] for p in payloads] == ["progress", "progress", "complete"]
    assert payloads[-1]["teaserUrl"].endswith("/output.manifest")
