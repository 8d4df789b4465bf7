"""中继层。

- dispatcher: 校验、选择适配器、调用厂商、写入消息。
- streaming: typing -> chunk -> complete 的流式展示状态机。
- transcript: 会话导出/导入。
"""
