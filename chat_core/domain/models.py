"""统一的消息与提示词数据模型。

本模块定义了客户端内部共享的标准数据结构：

- ChatMessage: 一条对话消息，通过 parent_message_id 串成单向链表。
- PromptTurn: 发送给远端的扁平化消息（没有 id 与父指针）。
- BuildResult: 上下文构建的产物（消息列表、token 数、回复预算）。
- ConversationCursor: 反向代理模式下新消息挂载的位置。
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from chat_core.domain.exceptions import ValidationError


# 消息角色（与 OpenAI chat completions 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

_UUID4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def new_message_id() -> str:
    return str(uuid4())


def is_valid_uuid4(value: Optional[str]) -> bool:
    return bool(value) and _UUID4_RE.match(value) is not None


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - id: 消息唯一标识，默认随机 uuid4。
    - role: 消息角色。
    - text: 文本内容。
    - parent_message_id: 上一轮消息的 id，沿它回溯即可得到历史。
    - name: 可选的说话者名称。
    - conversation_id: 仅反向代理模式使用，远端会话 id。
    - delta / detail: 仅流式过程中有意义，分别是最近一次的增量文本
      和最近一次的原始服务端事件。
    """

    role: Role
    text: str
    id: str = field(default_factory=new_message_id)
    parent_message_id: Optional[str] = None
    name: Optional[str] = None
    conversation_id: Optional[str] = None
    delta: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=data.get("role") or "user",
            text=data.get("text") or "",
            id=data["id"],
            parent_message_id=data.get("parent_message_id"),
            name=data.get("name"),
            conversation_id=data.get("conversation_id"),
            delta=data.get("delta"),
            detail=data.get("detail"),
        )


@dataclass
class PromptTurn:
    """发给远端的单条消息，也是 token 计数时的渲染单元。"""

    role: Role
    content: str
    name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            payload["name"] = self.name
        return payload


@dataclass
class BuildResult:
    """ContextBuilder 的输出。

    - turns: 最终发送的消息列表。
    - prompt_tokens: prompt 渲染后的 token 数。
    - response_budget: 本次请求的 max_tokens，范围 [1, max_response_tokens]。
    - prompt: 被计数的渲染字符串本身。
    """

    turns: List[PromptTurn]
    prompt_tokens: int
    response_budget: int
    prompt: str = ""


@dataclass
class ConversationCursor:
    """反向代理模式下的会话游标，两个字段要么同时给出，要么同时为空。"""

    conversation_id: Optional[str] = None
    parent_message_id: Optional[str] = None

    def validate(self) -> None:
        if bool(self.conversation_id) != bool(self.parent_message_id):
            raise ValidationError(
                code="INVALID_CURSOR",
                message="conversation_id and parent_message_id must both be set or both be unset",
            )
        if self.conversation_id and not is_valid_uuid4(self.conversation_id):
            raise ValidationError(code="INVALID_ID", message="conversation_id is not a valid v4 UUID")
        if self.parent_message_id and not is_valid_uuid4(self.parent_message_id):
            raise ValidationError(code="INVALID_ID", message="parent_message_id is not a valid v4 UUID")
