import asyncio
import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.app import _sse_event_stream
from backend.store import SessionStore
from onboarding.flow import FlowController


@pytest.mark.asyncio
async def test_sse_generator_single_waiter_during_heartbeats():
    queue: asyncio.Queue[str] = asyncio.Queue()
    gen = _sse_event_stream(queue, heartbeat_interval=0.01)

    try:
        for _ in range(3):
            event = await asyncio.wait_for(anext(gen), timeout=1)
            assert event == {"event": "ping", "data": "{}"}
            getters = getattr(queue, "_getters", [])
            assert len(getters) == 1

        await queue.put("[DONE]")
        done_event = await asyncio.wait_for(anext(gen), timeout=1)
        assert done_event == {"event": "done", "data": "{}"}
        assert not getattr(queue, "_getters", [])
    finally:
        await gen.aclose()


@pytest.mark.asyncio
async def test_published_turns_reach_subscribers(tmp_path: Path):
    store = SessionStore(tmp_path / "sessions.json", FlowController)
    controller = store.create()
    queue = store.subscribe(controller.session.id)
    gen = _sse_event_stream(queue, heartbeat_interval=5)

    try:
        await store.publish(controller.start())
        event = await asyncio.wait_for(anext(gen), timeout=1)
        assert event["event"] == "snapshot"
        assert json.loads(event["data"])["state"] == "initial"

        await store.close_streams(controller.session.id)
        done_event = await asyncio.wait_for(anext(gen), timeout=1)
        assert done_event["event"] == "done"
    finally:
        await gen.aclose()
        store.unsubscribe(controller.session.id, queue)


@pytest.mark.asyncio
async def test_unsubscribed_queue_gets_nothing(tmp_path: Path):
    store = SessionStore(tmp_path / "sessions.json", FlowController)
    controller = store.create()
    queue = store.subscribe(controller.session.id)
    store.unsubscribe(controller.session.id, queue)

    await store.publish(controller.start())

    assert queue.empty()
