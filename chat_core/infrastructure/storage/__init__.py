"""消息存储实现：内存 LRU（默认）与 JSON 文件。"""

from chat_core.infrastructure.storage.json_store import JsonMessageStore
from chat_core.infrastructure.storage.memory_store import LRUMessageStore

__all__ = ["JsonMessageStore", "LRUMessageStore"]
