from collections import OrderedDict
from typing import Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import MessageStore
from chat_core.domain.models import ChatMessage


class LRUMessageStore(MessageStore):
    """进程内的 LRU 消息缓存，进程退出后数据即丢失。

    读写都在事件循环线程内完成，中间没有 await，因此不需要加锁。
    """

    def __init__(self, max_size: int = 10000):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._items: "OrderedDict[str, ChatMessage]" = OrderedDict()

    async def get(self, message_id: str) -> Optional[ChatMessage]:
        message = self._items.get(message_id)
        if message is not None:
            self._items.move_to_end(message_id)
        return message

    async def set(self, message_id: str, message: ChatMessage) -> None:
        self._items[message_id] = message
        self._items.move_to_end(message_id)
        while len(self._items) > self._max_size:
            self._items.popitem(last=False)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._items


_default_store: Optional[LRUMessageStore] = None


def get_default_store() -> LRUMessageStore:
    """未指定存储时所有客户端共享的内存缓存。"""

    global _default_store
    if _default_store is None:
        _default_store = LRUMessageStore(max_size=settings.message_store_size)
    return _default_store
