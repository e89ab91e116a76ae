"""对外 API 服务模块。

提供简化的函数接口供上层应用调用，结果以普通 dict 返回。
"""

from typing import Any, Dict, Optional

from chat_core.domain.conversation import MessageStore
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.memory_store import get_default_store
from chat_core.providers import create_provider
from chat_core.providers.openai_client import OpenAIChatClient
from chat_core.streaming.aggregator import ProgressCallback


_client: Optional[OpenAIChatClient] = None


def get_default_client() -> OpenAIChatClient:
    """获取默认的 chat completions 客户端（单例）。"""
    global _client
    if _client is None:
        _client = create_provider("openai")
    return _client


def _message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "text": message.text,
        "parent_message_id": message.parent_message_id,
        "usage": (message.detail or {}).get("usage"),
    }


async def chat(
    text: str,
    parent_message_id: Optional[str] = None,
    stream: bool = False,
    on_progress: Optional[ProgressCallback] = None,
    timeout_ms: Optional[int] = None,
    client: Optional[OpenAIChatClient] = None,
) -> Dict[str, Any]:
    """发送一轮对话。

    Args:
        text: 用户输入内容
        parent_message_id: 上一条消息 id（可选，不提供则开启新对话）
        stream: 是否使用流式接口
        on_progress: 流式时的增量回调
        timeout_ms: 超时时间（毫秒）
        client: 指定客户端，默认使用单例

    Returns:
        包含助手消息字段（id/role/text/parent_message_id/usage）的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    client = client or get_default_client()
    try:
        reply = await client.send_message(
            text,
            parent_message_id=parent_message_id,
            stream=stream or on_progress is not None,
            on_progress=on_progress,
            timeout_ms=timeout_ms,
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "parent_message_id": parent_message_id,
            "error": str(e),
        }})
        raise
    return _message_to_dict(reply)


async def get_message(message_id: str, store: Optional[MessageStore] = None) -> Optional[Dict[str, Any]]:
    """按 id 读取一条已保存的消息，不存在时返回 None。"""
    store = store or get_default_store()
    message = await store.get(message_id)
    return _message_to_dict(message) if message else None
