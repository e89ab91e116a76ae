"""send_message 的扩展点。

需要定制行为时继承 MessageHooks 并覆盖对应方法，再通过构造参数
或 send_message(hooks=...) 传入：

- save_user_message: 用户消息的持久化方式（默认写入 MessageStore）。
- render_turn: 计算 token 时单条消息的渲染方式（默认 `<label>:\\n<content>`）。
- transform_request: 发送前修改请求头与请求体。
- reduce_event: 流式事件如何折叠进结果消息。
"""

from typing import Any, Dict, List, Optional, Tuple

from chat_core.domain.conversation import MessageStore
from chat_core.domain.models import ChatMessage, PromptTurn
from chat_core.streaming.aggregator import apply_completion_event


class MessageHooks:
    async def save_user_message(self, message: ChatMessage, store: MessageStore) -> None:
        await store.set(message.id, message)

    def render_turn(self, turn: PromptTurn) -> Optional[str]:
        return None

    def transform_request(self, headers: Dict[str, str], body: Dict[str, Any]) -> None:
        return None

    def reduce_event(
        self, result: ChatMessage, event: Dict[str, Any]
    ) -> Tuple[ChatMessage, List[ChatMessage]]:
        return apply_completion_event(result, event)


DEFAULT_HOOKS = MessageHooks()
