from __future__ import annotations

import json

import pytest

from opera.models.events import EventType, SSEEvent
from opera.services import streaming
from opera.services.event_bus import EventBus


@pytest.mark.asyncio
async def test_events_are_routed_by_project_and_user():
    bus = EventBus()
    harbor = bus.subscribe(project_id="harbor", user_id="u1")
    other = bus.subscribe(project_id="other", user_id="u2")

    bus.emit(streaming.chat("hello harbor", project_id="harbor"))
    bus.emit(streaming.notif("just u2", user_id="u2"))
    bus.emit(SSEEvent(event=EventType.CHAT, data={"message": "everyone"}))

    assert [e.data["message"] for e in _drain(harbor)] == ["hello harbor", "everyone"]
    assert [e.data["message"] for e in _drain(other)] == ["just u2", "everyone"]


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking():
    bus = EventBus(max_queue_size=1)
    sub = bus.subscribe(project_id="harbor")

    bus.emit(streaming.chat("first", project_id="harbor"))
    bus.emit(streaming.chat("second", project_id="harbor"))

    assert sub.dropped == 1
    assert [e.data["message"] for e in _drain(sub)] == ["first"]


@pytest.mark.asyncio
async def test_listen_unsubscribes_when_closed():
    bus = EventBus()
    sub = bus.subscribe(project_id="harbor")
    bus.emit(streaming.chat("ping", project_id="harbor"))

    stream = bus.listen(sub)
    event = await stream.__anext__()
    await stream.aclose()

    assert event.data["message"] == "ping"
    assert bus.subscriber_count == 0


def test_sse_frame_format():
    frame = streaming.notif("no #project open", user_id="u1").format()
    assert frame.startswith("event: notif\ndata: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame.split("data: ", 1)[1]) == {"message": "no #project open"}


def _drain(sub):
    events = []
    while not sub.queue.empty():
        events.append(sub.queue.get_nowait())
    return events
