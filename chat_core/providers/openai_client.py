"""OpenAI chat completions 客户端。

一次 send_message 的流程：

1. 先持久化用户消息（在任何网络请求之前）。
2. ContextBuilder 沿 parent_message_id 回溯历史，得到消息列表与 max_tokens。
3. 组装请求体并发送；stream=True 时用 StreamAggregator 折叠 SSE 事件，
   否则直接解析一次 JSON 响应。
4. 持久化助手消息并返回。

超时与取消见 providers.cancellation。没有任何重试。
"""

import logging
import time
from contextlib import aclosing
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

import httpx

from chat_core.config.settings import settings
from chat_core.context.builder import ContextBuilder
from chat_core.domain.conversation import MessageStore
from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError, ProtocolError
from chat_core.domain.models import ChatMessage, PromptTurn, new_message_id
from chat_core.infrastructure.logging.logger import log_event
from chat_core.infrastructure.storage.memory_store import get_default_store
from chat_core.infrastructure.tokenizer import TokenCounter, get_default_counter
from chat_core.prompts import default_system_message
from chat_core.providers.base import check_http_client, http_session
from chat_core.providers.cancellation import AbortSignal, PendingMessage, run_abortable, start_exchange
from chat_core.providers.hooks import DEFAULT_HOOKS, MessageHooks
from chat_core.providers.registry import OPENAI_CONFIG
from chat_core.streaming.aggregator import ProgressCallback, StreamAggregator
from chat_core.streaming.sse import fetch_sse


class OpenAIChatClient:
    """OpenAI chat completions 的对话客户端。

    - name: Provider 名称（供日志使用）。
    - send_message: 对外统一调用入口，返回可 await 的 PendingMessage。
    """

    name = "openai"

    def __init__(
        self,
        cfg=settings,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        completion_params: Optional[Dict[str, Any]] = None,
        system_message: Optional[str] = None,
        leading_turns: Optional[Sequence[PromptTurn]] = None,
        max_model_tokens: Optional[int] = None,
        max_response_tokens: Optional[int] = None,
        message_store: Optional[MessageStore] = None,
        token_counter: Optional[TokenCounter] = None,
        hooks: Optional[MessageHooks] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        custom_headers: Optional[Dict[str, str]] = None,
        custom_url: Optional[str] = None,
        debug: Optional[bool] = None,
    ):
        # cfg 里包含 base_url、api_key、超时等配置，构造参数优先
        self._settings = cfg
        self._api_key = api_key or getattr(cfg, "openai_api_key", None)
        if not self._api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="OpenAI missing required api_key")
        check_http_client(http_client)
        self._http_client = http_client

        self._base_url = (base_url or getattr(cfg, "openai_base_url", None) or OPENAI_CONFIG.base_url).rstrip("/")
        self._custom_url = custom_url
        self._custom_headers = dict(custom_headers or {})
        self._debug = getattr(cfg, "debug", False) if debug is None else debug

        params = dict(completion_params or {})
        model = params.get("model") or getattr(cfg, "openai_model", None) or OPENAI_CONFIG.default_model
        self._completion_params = {**OPENAI_CONFIG.model(model).completion_params(), **params}

        # None 表示使用默认提示词，空字符串表示不发送 system 消息
        self._system_message = default_system_message() if system_message is None else system_message
        self._leading_turns = list(leading_turns or [])
        self._store = message_store if message_store is not None else get_default_store()
        self._hooks = hooks or DEFAULT_HOOKS
        self._builder = ContextBuilder(
            self._store,
            token_counter or get_default_counter(),
            max_model_tokens=max_model_tokens or getattr(cfg, "max_model_tokens", 4000),
            max_response_tokens=max_response_tokens or getattr(cfg, "max_response_tokens", 1000),
        )

    @property
    def api_key(self) -> str:
        return self._api_key

    @api_key.setter
    def api_key(self, value: str) -> None:
        self._api_key = value

    @property
    def store(self) -> MessageStore:
        return self._store

    def send_message(
        self,
        text: str,
        *,
        parent_message_id: Optional[str] = None,
        message_id: Optional[str] = None,
        name: Optional[str] = None,
        system_message: Optional[str] = None,
        leading_turns: Optional[Sequence[PromptTurn]] = None,
        timeout_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        stream: Optional[bool] = None,
        completion_params: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None,
        hooks: Optional[MessageHooks] = None,
    ) -> PendingMessage:
        """发送一条消息并返回可 await 的结果。

        Args:
            text: 用户输入
            parent_message_id: 上一条消息 id；不提供则没有历史上下文
            message_id: 本条用户消息 id（默认随机 uuid4）
            system_message: 覆盖实例级的 system 提示词
            leading_turns: 覆盖实例级的固定前置消息
            timeout_ms: 超时时间；未传 abort_signal 时超时会中止请求
            on_progress: 每次回复更新时回调；传入时默认开启流式
            stream: 显式指定是否流式
            completion_params: 本次请求覆盖的模型参数
            abort_signal: 外部取消信号
            hooks: 本次请求使用的扩展点

        必须在事件循环中调用。
        """

        if stream is None:
            stream = on_progress is not None
        message = ChatMessage(
            role="user",
            text=text,
            id=message_id or new_message_id(),
            parent_message_id=parent_message_id,
            name=name,
        )

        def make_exchange(signal: Optional[AbortSignal]):
            return self._exchange(
                message,
                signal=signal,
                system_message=self._system_message if system_message is None else system_message,
                leading_turns=self._leading_turns if leading_turns is None else list(leading_turns),
                stream=stream,
                on_progress=on_progress,
                completion_params=completion_params,
                hooks=hooks or self._hooks,
            )

        return start_exchange(
            make_exchange,
            timeout_ms=timeout_ms,
            abort_signal=abort_signal,
            timeout_message="OpenAI timed out waiting for response",
        )

    async def _exchange(
        self,
        message: ChatMessage,
        *,
        signal: Optional[AbortSignal],
        system_message: str,
        leading_turns: List[PromptTurn],
        stream: bool,
        on_progress: Optional[ProgressCallback],
        completion_params: Optional[Dict[str, Any]],
        hooks: MessageHooks,
    ) -> ChatMessage:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "provider": self.name,
            "user_message_id": message.id,
        }

        await hooks.save_user_message(message, self._store)

        built = await self._builder.build(
            message.text,
            parent_message_id=message.parent_message_id,
            system_message=system_message,
            leading_turns=leading_turns,
            name=message.name,
            render_turn=hooks.render_turn,
        )
        result = ChatMessage(role="assistant", text="", parent_message_id=message.id)

        url = self._custom_url or f"{self._base_url}/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
            **self._custom_headers,
        }
        body: Dict[str, Any] = {
            "max_tokens": built.response_budget,
            **self._completion_params,
            **(completion_params or {}),
            "messages": [turn.to_payload() for turn in built.turns],
            "stream": stream,
        }
        hooks.transform_request(headers, body)

        log_event(
            logging.INFO,
            "Calling provider",
            log_ctx,
            model=body.get("model"),
            stream=stream,
            prompt_tokens=built.prompt_tokens,
            max_tokens=body.get("max_tokens"),
            message_count=len(built.turns),
        )
        if self._debug:
            log_event(logging.DEBUG, f"send_message ({built.prompt_tokens} tokens)", log_ctx, body=body)

        async with http_session(self._http_client, self._settings) as client:
            if stream:
                reply = await run_abortable(
                    self._stream_reply(client, url, headers, body, result, on_progress, hooks), signal
                )
            else:
                reply = await run_abortable(self._fetch_reply(client, url, headers, body, result), signal)

        await self._store.set(reply.id, reply)
        log_event(
            logging.INFO,
            "Stored assistant message",
            log_ctx,
            message_id=reply.id,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return reply

    async def _stream_reply(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        result: ChatMessage,
        on_progress: Optional[ProgressCallback],
        hooks: MessageHooks,
    ) -> ChatMessage:
        aggregator = StreamAggregator(result, on_progress=on_progress, reducer=hooks.reduce_event)
        async with aclosing(fetch_sse(client, url, headers=headers, body=body)) as events:
            return await aggregator.consume(events)

    async def _fetch_reply(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        result: ChatMessage,
    ) -> ChatMessage:
        try:
            resp = await client.post(url, json=body, headers=headers)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if not resp.is_success:
            raise ApiError(
                code="API_ERROR",
                message=f"OpenAI error {resp.status_code}: {resp.text}",
                http_status=resp.status_code,
                status_text=resp.reason_phrase,
                body=resp.text,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ProtocolError(code="INVALID_RESPONSE", message=f"OpenAI returned invalid JSON: {e}", body=resp.text)
        if self._debug:
            log_event(logging.DEBUG, "Provider response", {"provider": self.name}, response=data)
        return self._parse_response(data, result)

    @staticmethod
    def _parse_response(data: Any, result: ChatMessage) -> ChatMessage:
        """把一次性响应 JSON 解析为助手消息，choices 为空时带上服务端的 detail。"""

        if not isinstance(data, dict):
            raise ProtocolError(code="INVALID_RESPONSE", message="OpenAI response is not an object", detail=data)
        choices = data.get("choices") or []
        if not choices:
            detail = data.get("detail")
            reason = (detail.get("message") if isinstance(detail, dict) else detail) or "unknown"
            raise ProtocolError(code="EMPTY_CHOICES", message=f"OpenAI error: {reason}", detail=data)
        message = choices[0].get("message") or {}
        return replace(
            result,
            id=data.get("id") or result.id,
            role=message.get("role") or result.role,
            text=message.get("content") or "",
            detail=data,
        )
