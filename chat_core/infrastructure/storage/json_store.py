import asyncio
import json
import os
from pathlib import Path
from typing import Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import MessageStore
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import ChatMessage


class JsonMessageStore(MessageStore):
    """每条消息一个 JSON 文件的持久化存储。

    写入先落到临时文件再 os.replace，同一 key 的并发写入以最后一次为准。
    文件读写放在线程池中执行，不阻塞事件循环。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._msg_root = self._root / "messages"
        self._msg_root.mkdir(parents=True, exist_ok=True)

    async def get(self, message_id: str) -> Optional[ChatMessage]:
        path = self._path_for(message_id)
        return await asyncio.to_thread(self._read, path)

    async def set(self, message_id: str, message: ChatMessage) -> None:
        path = self._path_for(message_id)
        await asyncio.to_thread(self._write, path, message)

    def _read(self, path: Path) -> Optional[ChatMessage]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return ChatMessage.from_dict(data)

    def _write(self, path: Path, message: ChatMessage) -> None:
        tmp_path = self._msg_root / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(message.to_dict(), ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def _path_for(self, message_id: str) -> Path:
        # id 由调用方提供，不能让它逃出存储目录
        if not message_id or "/" in message_id or "\\" in message_id or message_id.startswith("."):
            raise BusinessError(code="STORE_INVALID_KEY", message=repr(message_id))
        return self._msg_root / f"{message_id}.json"
