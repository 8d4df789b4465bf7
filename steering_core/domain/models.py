"""统一的中继数据模型。

本模块定义了在不同 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- RelayRequest: 发往某个模型槽位（A/B）的一次中继请求。
- RelayResult: 中继成功后的统一结果。
- ProviderReply: 适配器从厂商响应中提取出的文本与用量。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, List, Dict


# 通用角色词汇，各厂商不同的 role 由适配器自行映射
Role = Literal["system", "user", "assistant"]

# 消息归属：A/B 两个模型槽位，或用户、系统（引导备注）
ModelType = Literal["A", "B", "user", "system"]

# 可以被中继的槽位
SLOTS = ("A", "B")


@dataclass
class ChatMessage:
    """一条对话消息，仅包含发给 Provider 的字段。"""

    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class RelayRequest:
    """一次中继请求，不持久化，每次调用时构造。"""

    session_id: str
    model_type: ModelType
    messages: List[ChatMessage] = field(default_factory=list)


@dataclass
class RelayResult:
    content: str
    model_used: str


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ProviderReply:
    """适配器解析后的单次响应。

    - text: 提取出的回答文本。
    - usage: 厂商返回的 token 统计，缺失时为 None。
    """

    text: str
    usage: Optional[ChatUsage] = None


@dataclass
class RelayMetrics:
    """一次成功中继的真实耗时与用量，由 Dispatcher 产生。"""

    session_id: str
    model_type: ModelType
    provider: str
    model: str
    latency_ms: float
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
