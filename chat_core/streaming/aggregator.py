"""流式回复聚合器。

把 SSE 载荷逐个折叠进同一条结果消息：

    result = fold(payloads, initial, reducer)

每一步由 reducer 产出新的 ChatMessage 快照（不会原地修改旧快照），
需要通知进度的快照会按接收顺序交给 on_progress。遇到 `[DONE]` 结束并
resolve；遇到无法解析的载荷则 reject，之后即使再收到 `[DONE]` 也不会 resolve。
"""

import json
import logging
from dataclasses import replace
from typing import Any, AsyncIterable, Callable, Dict, Iterable, List, Literal, Optional, Tuple

from chat_core.domain.exceptions import ConnectionTerminatedError, ProtocolError
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger


DONE_SENTINEL = "[DONE]"

ProgressCallback = Callable[[ChatMessage], None]
# (当前结果, 已解析的事件) -> (新结果, 需要通知进度的快照列表)
EventReducer = Callable[[ChatMessage, Dict[str, Any]], Tuple[ChatMessage, List[ChatMessage]]]

AggregatorState = Literal["streaming", "resolved", "rejected"]


def apply_completion_event(
    result: ChatMessage, event: Dict[str, Any]
) -> Tuple[ChatMessage, List[ChatMessage]]:
    """chat completions 的增量事件：`{id?, choices?: [{delta}], usage?}`。"""

    updates: List[ChatMessage] = []
    if event.get("id"):
        result = replace(result, id=event["id"])

    choices = event.get("choices") or []
    if choices:
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        result = replace(
            result,
            text=result.text + content if content else result.text,
            delta=content,
            role=delta.get("role") or result.role,
            detail=event,
        )
        updates.append(result)

    usage = event.get("usage")
    if usage and result.detail is not None:
        result = replace(result, detail={**result.detail, "usage": usage})
        updates.append(result)
    return result, updates


def apply_conversation_event(
    result: ChatMessage, event: Dict[str, Any]
) -> Tuple[ChatMessage, List[ChatMessage]]:
    """反向代理的会话事件：`{conversation_id?, message?: {id, content: {parts}}}`。

    parts[0] 是截至目前的完整文本，而不是增量。
    """

    updates: List[ChatMessage] = []
    if event.get("conversation_id"):
        result = replace(result, conversation_id=event["conversation_id"])

    message = event.get("message") or {}
    if message.get("id"):
        result = replace(result, id=message["id"])

    parts = (message.get("content") or {}).get("parts") or []
    text = parts[0] if parts else None
    if text:
        delta = text[len(result.text):] if text.startswith(result.text) else text
        result = replace(result, text=text, delta=delta, detail=event)
        updates.append(result)
    return result, updates


class StreamAggregator:
    """一次流式回复的状态机：streaming -> resolved | rejected。"""

    def __init__(
        self,
        result: ChatMessage,
        on_progress: Optional[ProgressCallback] = None,
        reducer: EventReducer = apply_completion_event,
        ignore_malformed: bool = False,
    ):
        self.result = result
        self.state: AggregatorState = "streaming"
        self._on_progress = on_progress
        self._reducer = reducer
        self._ignore_malformed = ignore_malformed
        self._error: Optional[Exception] = None

    @property
    def finished(self) -> bool:
        return self.state != "streaming"

    def feed(self, payload: str) -> bool:
        """处理一个 SSE 载荷，进入终态时返回 True。"""

        if self._error is not None:
            raise self._error
        if self.state == "resolved":
            return True

        data = payload.strip()
        if data == DONE_SENTINEL:
            self._resolve()
            return True

        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            event = None
            reason = f"Unexpected stream event: {e}"
        else:
            reason = "Stream event is not an object"
        if not isinstance(event, dict):
            return self._malformed(data, reason)

        try:
            self.result, updates = self._reducer(self.result, event)
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            # 合法 JSON 但结构不对，例如 choices 里不是对象
            return self._malformed(data, f"Unexpected stream event shape: {e}")
        if self._on_progress:
            for snapshot in updates:
                self._on_progress(snapshot)
        return False

    def _malformed(self, data: str, reason: str) -> bool:
        if self._ignore_malformed:
            logger.warning("Skipping malformed stream event", extra={"extra": {"payload": data[:200]}})
            return False
        raise self.reject(ProtocolError(code="STREAM_PARSE_ERROR", message=reason, payload=data))

    def reject(self, error: Exception) -> Exception:
        """进入 rejected 终态并返回错误，由调用方 raise。"""

        if self._error is None:
            self.state = "rejected"
            self._error = error
        return self._error

    def fold(self, payloads: Iterable[str]) -> ChatMessage:
        """同步折叠一组载荷；没有遇到 `[DONE]` 时按连接中断处理。"""

        for payload in payloads:
            if self.feed(payload):
                return self.result
        return self._finish_early(None)

    async def consume(self, payloads: AsyncIterable[str]) -> ChatMessage:
        try:
            async for payload in payloads:
                if self.feed(payload):
                    return self.result
        except Exception as e:
            if self._error is None and is_connection_terminated(e):
                return self._finish_early(e)
            raise self.reject(e)
        return self._finish_early(None)

    def _resolve(self) -> None:
        self.result = replace(self.result, text=self.result.text.strip())
        self.state = "resolved"

    def _finish_early(self, error: Optional[Exception]) -> ChatMessage:
        # 已经产出文本的连接被截断时，把部分结果当作最终答案
        if self.result.text:
            logger.warning(
                "Stream ended before [DONE], returning partial reply",
                extra={"extra": {"message_id": self.result.id, "chars": len(self.result.text)}},
            )
            self._resolve()
            return self.result
        raise self.reject(
            error
            or ProtocolError(code="STREAM_INCOMPLETE", message="Stream closed before [DONE] without any content")
        )


def is_connection_terminated(error: BaseException) -> bool:
    """对端在流中途断开连接（而不是本端取消或其他错误）。"""

    if isinstance(error, ConnectionTerminatedError):
        return True
    return str(error).strip().lower() in {"terminated", "typeerror: terminated", "error: typeerror: terminated"}


def fold_events(
    payloads: Iterable[str],
    initial: ChatMessage,
    on_progress: Optional[ProgressCallback] = None,
    reducer: EventReducer = apply_completion_event,
) -> ChatMessage:
    return StreamAggregator(initial, on_progress=on_progress, reducer=reducer).fold(payloads)
