"""Provider 抽象接口。

上层只依赖 ProviderClient 协议：send_message(text, ...) 返回一个可
await 的 PendingMessage，结果是统一的 ChatMessage。具体客户端负责
把请求转换为各自的 HTTP 接口格式，并把响应解析回 ChatMessage。
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

import httpx

from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers.cancellation import PendingMessage


class ProviderClient(Protocol):
    """对话客户端协议。

    - name: Provider 名称，用于日志。
    - send_message(text, **opts): 发起一次交换。
    """

    name: str

    def send_message(self, text: str, **opts: Any) -> PendingMessage:
        ...


def check_http_client(client: Optional[Any]) -> None:
    """校验调用方注入的 http 客户端（需要具备 httpx.AsyncClient 的 post/stream）。"""

    if client is None:
        return
    if not callable(getattr(client, "post", None)) or not callable(getattr(client, "stream", None)):
        raise ConfigurationError(
            code="INVALID_TRANSPORT",
            message='Invalid "http_client": expected an httpx.AsyncClient-compatible object',
        )


@asynccontextmanager
async def http_session(client: Optional[httpx.AsyncClient], settings: Any) -> AsyncIterator[httpx.AsyncClient]:
    """注入的客户端直接复用且不关闭；否则为本次交换新建一个。"""

    if client is not None:
        yield client
        return
    timeout = getattr(settings, "http_timeout", 30.0)
    async with httpx.AsyncClient(timeout=timeout, trust_env=False) as owned:
        yield owned
