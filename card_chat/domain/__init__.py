"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ProviderResult / ChatReply 模型。
- validation: 会话结构校验（validate_conversation）。
- exceptions: 业务异常类型定义。
"""
