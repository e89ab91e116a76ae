from chat_core.context.builder import ContextBuilder, TurnRenderer

__all__ = ["ContextBuilder", "TurnRenderer"]
