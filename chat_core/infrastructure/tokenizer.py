"""Token 计数。

上下文构建只依赖 `count(text) -> int` 这一契约；默认实现基于
tiktoken 的 cl100k_base 编码，编码表在第一次计数时才加载。
"""

from typing import Any, List, Optional, Protocol

import tiktoken


END_OF_TEXT = "<|endoftext|>"


class TokenCounter(Protocol):
    def count(self, text: str) -> int:
        ...


class TiktokenCounter:
    """tiktoken 计数器，对同一词表是纯函数。"""

    def __init__(self, encoding_name: str = "cl100k_base", encoding: Optional[Any] = None):
        self._encoding_name = encoding_name
        self._encoding = encoding

    @property
    def encoding(self) -> Any:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
        return self._encoding

    def encode(self, text: str) -> List[int]:
        # 结束符直接去掉，其余特殊 token 字面量按普通文本计数
        return self.encoding.encode(text.replace(END_OF_TEXT, ""), disallowed_special=())

    def count(self, text: str) -> int:
        return len(self.encode(text))


_default_counter: Optional[TiktokenCounter] = None


def get_default_counter() -> TiktokenCounter:
    """进程级共享的默认计数器。"""

    global _default_counter
    if _default_counter is None:
        _default_counter = TiktokenCounter()
    return _default_counter
