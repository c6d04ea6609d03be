import asyncio
import inspect
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding.errors import FlowCancelled
from onboarding.session import CancellationToken, OnboardingSession


async def _answer():
    await asyncio.sleep(0)
    return "ok"


@pytest.mark.asyncio
async def test_token_runs_awaitable_until_cancelled():
    token = CancellationToken()
    assert await token.run(_answer()) == "ok"
    assert token.cancelled is False


@pytest.mark.asyncio
async def test_cancelled_token_closes_the_coroutine_it_refuses():
    token = CancellationToken()
    token.cancel()
    pending = _answer()

    with pytest.raises(FlowCancelled):
        await token.run(pending)

    assert inspect.getcoroutinestate(pending) == inspect.CORO_CLOSED


@pytest.mark.asyncio
async def test_cancel_aborts_call_in_flight():
    token = CancellationToken()
    release = asyncio.Event()

    task = asyncio.create_task(token.run(release.wait()))
    await asyncio.sleep(0)
    token.cancel()

    with pytest.raises(FlowCancelled):
        await task


def test_reset_keeps_the_session_id():
    session = OnboardingSession()
    session.select_platform("email")
    session_id = session.id

    session.reset()

    assert session.id == session_id
    assert session.selected_platforms == []
    assert "platforms" not in session.answers
