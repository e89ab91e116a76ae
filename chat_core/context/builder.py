"""上下文窗口预算。

从新消息的 parent_message_id 出发逐条回溯历史，每多拼一条就把
整段 prompt 重新渲染并计数，直到超过 `max_model_tokens - max_response_tokens`
或者链条断开。计数对象始终是渲染后的完整字符串，标签与分隔符也会被计入，
所以这里得到的 token 数与实际发送的内容一致。
"""

from typing import Callable, List, Optional, Sequence

from chat_core.domain.conversation import MessageStore
from chat_core.domain.models import BuildResult, PromptTurn
from chat_core.infrastructure.tokenizer import TokenCounter


USER_LABEL_DEFAULT = "User"
ASSISTANT_LABEL_DEFAULT = "ChatGPT"
SYSTEM_LABEL = "Instructions"

# 返回 None 表示沿用默认的 `<label>:\n<content>` 渲染
TurnRenderer = Callable[[PromptTurn], Optional[str]]


class ContextBuilder:
    def __init__(
        self,
        store: MessageStore,
        token_counter: TokenCounter,
        max_model_tokens: int = 4000,
        max_response_tokens: int = 1000,
        user_label: str = USER_LABEL_DEFAULT,
        assistant_label: str = ASSISTANT_LABEL_DEFAULT,
    ):
        self._store = store
        self._counter = token_counter
        self.max_model_tokens = max_model_tokens
        self.max_response_tokens = max_response_tokens
        self.user_label = user_label
        self.assistant_label = assistant_label

    async def build(
        self,
        text: str,
        parent_message_id: Optional[str] = None,
        system_message: Optional[str] = None,
        leading_turns: Sequence[PromptTurn] = (),
        name: Optional[str] = None,
        render_turn: Optional[TurnRenderer] = None,
    ) -> BuildResult:
        """构造本轮要发送的消息列表。

        固定前缀（system + leading_turns）永远保留；历史消息插在前缀之后，
        越新的离前缀越近，整体保持时间顺序。第一个候选（还没有历史）
        即使超出预算也会被采用，而带历史的候选一旦超出就被丢弃。
        """

        max_prompt_tokens = self.max_model_tokens - self.max_response_tokens

        prefix: List[PromptTurn] = []
        if system_message:
            prefix.append(PromptTurn(role="system", content=system_message))
        prefix.extend(leading_turns)
        splice_at = len(prefix)

        candidate = list(prefix)
        if text:
            candidate.append(PromptTurn(role="user", content=text, name=name))

        turns: List[PromptTurn] = candidate
        prompt = ""
        prompt_tokens = 0
        has_history = False
        cursor = parent_message_id

        while True:
            rendered = self.render(candidate, render_turn)
            num_tokens = self._counter.count(rendered)
            fits = num_tokens <= max_prompt_tokens
            if not fits and has_history:
                break

            turns, prompt, prompt_tokens = candidate, rendered, num_tokens
            if not fits or not cursor:
                break

            parent = await self._store.get(cursor)
            if parent is None:
                break

            history_turn = PromptTurn(role=parent.role or "user", content=parent.text, name=parent.name)
            candidate = candidate[:splice_at] + [history_turn] + candidate[splice_at:]
            has_history = True
            cursor = parent.parent_message_id

        response_budget = max(1, min(self.max_model_tokens - prompt_tokens, self.max_response_tokens))
        return BuildResult(
            turns=turns,
            prompt_tokens=prompt_tokens,
            response_budget=response_budget,
            prompt=prompt,
        )

    def render(self, turns: Sequence[PromptTurn], render_turn: Optional[TurnRenderer] = None) -> str:
        blocks: List[str] = []
        for turn in turns:
            custom = render_turn(turn) if render_turn else None
            if custom is not None:
                blocks.append(custom)
            elif turn.role == "system":
                blocks.append(f"{SYSTEM_LABEL}:\n{turn.content}")
            elif turn.role == "user":
                blocks.append(f"{self.user_label}:\n{turn.content}")
            else:
                blocks.append(f"{self.assistant_label}:\n{turn.content}")
        return "\n\n".join(blocks)
