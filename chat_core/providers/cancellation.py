"""取消与超时。

- AbortController / AbortSignal: 协作式取消，signal 触发后正在进行的
  传输任务会被 cancel，并以 RequestAbortedError 结束。
- PendingMessage: send_message 返回的可等待对象；内部创建了 controller
  （设置了 timeout_ms 且调用方没有传 abort_signal）时可以 cancel()。
- start_exchange: 把一次交换包装成 asyncio.Task，按需加上超时竞速。
"""

import asyncio
from typing import Any, Awaitable, Callable, Generator, Optional, TypeVar

from chat_core.domain.exceptions import RequestAbortedError, RequestTimeoutError
from chat_core.domain.models import ChatMessage

T = TypeVar("T")


class AbortSignal:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class AbortController:
    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: str = "aborted") -> None:
        if self.signal.aborted:
            return
        self.signal.reason = reason
        self.signal._event.set()


async def run_abortable(coro: Awaitable[T], signal: Optional[AbortSignal]) -> T:
    """运行 coro，signal 触发时取消它并抛出 RequestAbortedError。"""

    if signal is None:
        return await coro
    task = asyncio.ensure_future(coro)
    if signal.aborted:
        task.cancel()
        raise RequestAbortedError(code="ABORTED", message=signal.reason or "aborted")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise RequestAbortedError(code="ABORTED", message=signal.reason or "aborted")


class PendingMessage:
    """一次 send_message 的进行中结果，`await` 得到 ChatMessage。"""

    def __init__(self, task: "asyncio.Task[ChatMessage]", controller: Optional[AbortController] = None):
        self._task = task
        self._controller = controller

    def __await__(self) -> Generator[Any, None, ChatMessage]:
        return self._task.__await__()

    @property
    def can_cancel(self) -> bool:
        return self._controller is not None

    @property
    def signal(self) -> Optional[AbortSignal]:
        return self._controller.signal if self._controller else None

    def cancel(self) -> bool:
        """中止内部 controller；没有内部 controller 时返回 False。"""

        if self._controller is None:
            return False
        self._controller.abort("cancelled")
        return True

    def done(self) -> bool:
        return self._task.done()


def _retrieve_exception(task: "asyncio.Future[Any]") -> None:
    # 超时后被放弃的任务仍可能失败，取走异常以免事件循环报警
    if not task.cancelled():
        task.exception()


async def _race_deadline(
    coro: Awaitable[ChatMessage],
    timeout_ms: int,
    controller: Optional[AbortController],
    message: str,
) -> ChatMessage:
    inner = asyncio.ensure_future(coro)
    inner.add_done_callback(_retrieve_exception)
    try:
        return await asyncio.wait_for(asyncio.shield(inner), timeout_ms / 1000)
    except asyncio.TimeoutError:
        # 调用方自带 signal 时由调用方负责取消，这里只报超时
        if controller is not None:
            controller.abort(message)
        raise RequestTimeoutError(code="TIMEOUT", message=message, http_status=504, timeout_ms=timeout_ms) from None
    except asyncio.CancelledError:
        if controller is not None:
            controller.abort("cancelled")
        raise


def start_exchange(
    make_exchange: Callable[[Optional[AbortSignal]], Awaitable[ChatMessage]],
    *,
    timeout_ms: Optional[int] = None,
    abort_signal: Optional[AbortSignal] = None,
    timeout_message: str = "timed out waiting for response",
) -> PendingMessage:
    """在当前事件循环中启动一次交换。"""

    controller: Optional[AbortController] = None
    if timeout_ms and abort_signal is None:
        controller = AbortController()
        abort_signal = controller.signal

    coro = make_exchange(abort_signal)
    if timeout_ms:
        coro = _race_deadline(coro, timeout_ms, controller, timeout_message)
    task = asyncio.get_running_loop().create_task(coro)
    return PendingMessage(task, controller)
