"""领域层模型与协议。

包含：
- models: ChatMessage / PromptTurn / BuildResult / ConversationCursor。
- conversation: MessageStore 存储协议。
- exceptions: 业务异常类型定义。
"""
