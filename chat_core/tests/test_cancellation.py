import asyncio

import pytest

from chat_core.domain.exceptions import RequestAbortedError, RequestTimeoutError
from chat_core.domain.models import ChatMessage
from chat_core.providers.cancellation import AbortController, run_abortable, start_exchange


async def _reply(delay=0.0, text="ok"):
    await asyncio.sleep(delay)
    return ChatMessage(role="assistant", text=text)


@pytest.mark.asyncio
async def test_run_abortable_without_signal_passes_through():
    res = await run_abortable(_reply(), None)
    assert res.text == "ok"


@pytest.mark.asyncio
async def test_run_abortable_with_already_aborted_signal():
    controller = AbortController()
    controller.abort("stop")
    with pytest.raises(RequestAbortedError) as exc_info:
        await run_abortable(_reply(), controller.signal)
    assert exc_info.value.message == "stop"


@pytest.mark.asyncio
async def test_run_abortable_cancels_inner_task():
    controller = AbortController()
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    task = asyncio.ensure_future(run_abortable(slow(), controller.signal))
    await asyncio.sleep(0.01)
    controller.abort()
    with pytest.raises(RequestAbortedError):
        await task
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_start_exchange_resolves():
    pending = start_exchange(lambda signal: _reply())
    assert not pending.can_cancel
    assert pending.cancel() is False
    assert (await pending).text == "ok"
    assert pending.done()


@pytest.mark.asyncio
async def test_timeout_with_external_signal_does_not_fire_it():
    controller = AbortController()
    pending = start_exchange(
        lambda signal: _reply(delay=0.2),
        timeout_ms=20,
        abort_signal=controller.signal,
        timeout_message="too slow",
    )
    with pytest.raises(RequestTimeoutError) as exc_info:
        await pending
    assert exc_info.value.message == "too slow"
    assert exc_info.value.extra["timeout_ms"] == 20
    assert not controller.signal.aborted
    await asyncio.sleep(0.25)


@pytest.mark.asyncio
async def test_timeout_fires_internal_signal():
    seen = {}

    def make(signal):
        seen["signal"] = signal
        return run_abortable(_reply(delay=3600), signal)

    pending = start_exchange(make, timeout_ms=20)
    with pytest.raises(RequestTimeoutError):
        await pending
    assert seen["signal"].aborted
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_fast_reply_beats_deadline():
    pending = start_exchange(lambda signal: _reply(), timeout_ms=1000)
    assert (await pending).text == "ok"
