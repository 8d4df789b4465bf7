"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / RelayRequest / RelayResult 模型。
- session: 配置、会话与消息记录及 SessionStore 抽象。
- exceptions: 业务异常类型定义。
"""
