from typing import Optional, Protocol

from .models import ChatMessage


class MessageStore(Protocol):
    """消息存储协议：按 id 读写单条消息，读不到时返回 None。

    同一个实例会被并发的多次 send_message 共享，实现只需保证
    不同 key 之间互不干扰，同一 key 后写覆盖先写即可。
    """

    async def get(self, message_id: str) -> Optional[ChatMessage]:
        ...

    async def set(self, message_id: str, message: ChatMessage) -> None:
        ...
