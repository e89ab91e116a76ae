"""流式响应：SSE 读取与回复聚合。"""

from chat_core.streaming.aggregator import (
    DONE_SENTINEL,
    StreamAggregator,
    apply_completion_event,
    apply_conversation_event,
    fold_events,
)
from chat_core.streaming.sse import fetch_sse, iter_sse_data

__all__ = [
    "DONE_SENTINEL",
    "StreamAggregator",
    "apply_completion_event",
    "apply_conversation_event",
    "fold_events",
    "fetch_sse",
    "iter_sse_data",
]
