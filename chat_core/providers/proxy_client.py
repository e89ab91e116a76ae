"""ChatGPT 网页版反向代理客户端。

会话历史保存在远端，客户端只需要提供 conversation_id 与
parent_message_id 指明新消息挂在哪里；回复总是以 SSE 流的形式返回，
每个事件携带截至当前的完整文本。
"""

import logging
import time
from contextlib import aclosing
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ConfigurationError, ValidationError
from chat_core.domain.models import ChatMessage, ConversationCursor, is_valid_uuid4, new_message_id
from chat_core.infrastructure.logging.logger import log_event
from chat_core.providers.base import check_http_client, http_session
from chat_core.providers.cancellation import AbortSignal, PendingMessage, run_abortable, start_exchange
from chat_core.providers.registry import PROXY_CONFIG
from chat_core.streaming.aggregator import ProgressCallback, StreamAggregator, apply_conversation_event
from chat_core.streaming.sse import fetch_sse


class ProxyChatClient:
    name = "proxy"

    def __init__(
        self,
        cfg=settings,
        *,
        access_token: Optional[str] = None,
        proxy_url: Optional[str] = None,
        model: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        debug: Optional[bool] = None,
    ):
        self._settings = cfg
        self._access_token = access_token or getattr(cfg, "proxy_access_token", None)
        if not self._access_token:
            raise ConfigurationError(code="MISSING_ACCESS_TOKEN", message="ChatGPT invalid access_token")
        check_http_client(http_client)
        self._http_client = http_client
        self._proxy_url = proxy_url or getattr(cfg, "proxy_url", None) or PROXY_CONFIG.base_url
        self._model = model or getattr(cfg, "proxy_model", None) or PROXY_CONFIG.default_model
        self._headers = dict(headers or {})
        self._debug = getattr(cfg, "debug", False) if debug is None else debug

    @property
    def access_token(self) -> str:
        return self._access_token

    @access_token.setter
    def access_token(self, value: str) -> None:
        self._access_token = value

    def send_message(
        self,
        text: str,
        *,
        conversation_id: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        message_id: Optional[str] = None,
        action: str = "next",
        timeout_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> PendingMessage:
        """发送一条消息；id 校验失败时在发起请求前直接抛 ValidationError。"""

        ConversationCursor(conversation_id, parent_message_id).validate()
        if message_id and not is_valid_uuid4(message_id):
            raise ValidationError(code="INVALID_ID", message="message_id is not a valid v4 UUID")

        message_id = message_id or new_message_id()
        body: Dict[str, Any] = {
            "action": action,
            "messages": [
                {
                    "id": message_id,
                    "role": "user",
                    "content": {"content_type": "text", "parts": [text]},
                }
            ],
            "model": self._model,
            "parent_message_id": parent_message_id or new_message_id(),
        }
        if conversation_id:
            body["conversation_id"] = conversation_id

        result = ChatMessage(
            role="assistant",
            text="",
            parent_message_id=message_id,
            conversation_id=conversation_id,
        )

        def make_exchange(signal: Optional[AbortSignal]):
            return self._exchange(body, result, signal=signal, on_progress=on_progress)

        return start_exchange(
            make_exchange,
            timeout_ms=timeout_ms,
            abort_signal=abort_signal,
            timeout_message="ChatGPT timed out waiting for response",
        )

    async def _exchange(
        self,
        body: Dict[str, Any],
        result: ChatMessage,
        *,
        signal: Optional[AbortSignal],
        on_progress: Optional[ProgressCallback],
    ) -> ChatMessage:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "provider": self.name,
            "conversation_id": body.get("conversation_id"),
        }
        headers = {
            **self._headers,
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }
        log_event(logging.INFO, "Calling provider (stream)", log_ctx, model=self._model)
        if self._debug:
            log_event(logging.DEBUG, f"POST {self._proxy_url}", log_ctx, body=body)

        async with http_session(self._http_client, self._settings) as client:
            reply = await run_abortable(self._stream_reply(client, headers, body, result, on_progress), signal)

        log_event(
            logging.INFO,
            "Received reply",
            log_ctx,
            message_id=reply.id,
            conversation_id=reply.conversation_id,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return reply

    async def _stream_reply(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        body: Dict[str, Any],
        result: ChatMessage,
        on_progress: Optional[ProgressCallback],
    ) -> ChatMessage:
        # 代理偶尔会推送非 JSON 的事件（如时间戳），跳过即可
        aggregator = StreamAggregator(
            result,
            on_progress=on_progress,
            reducer=apply_conversation_event,
            ignore_malformed=True,
        )
        events = fetch_sse(client, self._proxy_url, headers=headers, body=body, error_prefix="ChatGPT error")
        async with aclosing(events) as payloads:
            return await aggregator.consume(payloads)
