"""Chat Core 顶层包。

该包提供对话补全 API 的客户端实现，包括配置加载、领域模型、
上下文窗口预算、流式回复聚合、超时与取消以及消息存储等能力。
"""

from chat_core.domain.exceptions import (
    ApiError,
    BusinessError,
    ConfigurationError,
    ConnectionTerminatedError,
    NetworkError,
    ProtocolError,
    RequestAbortedError,
    RequestTimeoutError,
    TransportError,
    ValidationError,
)
from chat_core.domain.models import ChatMessage, PromptTurn
from chat_core.providers import create_provider
from chat_core.providers.cancellation import AbortController, PendingMessage
from chat_core.providers.hooks import MessageHooks
from chat_core.providers.openai_client import OpenAIChatClient
from chat_core.providers.proxy_client import ProxyChatClient

__all__ = [
    "AbortController",
    "ApiError",
    "BusinessError",
    "ChatMessage",
    "ConfigurationError",
    "ConnectionTerminatedError",
    "MessageHooks",
    "NetworkError",
    "OpenAIChatClient",
    "PendingMessage",
    "PromptTurn",
    "ProtocolError",
    "ProxyChatClient",
    "RequestAbortedError",
    "RequestTimeoutError",
    "TransportError",
    "ValidationError",
    "create_provider",
]
