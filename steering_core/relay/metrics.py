"""按会话聚合的中继用量，数据全部来自 Dispatcher 的 RelayMetrics 事件。"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

from steering_core.domain.models import RelayMetrics


@dataclass
class SessionUsage:
    request_count: int = 0
    total_latency_ms: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    per_slot: Dict[str, int] = field(default_factory=dict)

    @property
    def average_latency_ms(self) -> float:
        if not self.request_count:
            return 0.0
        return round(self.total_latency_ms / self.request_count, 2)

    def to_dict(self) -> Dict[str, object]:
        return {
            "requestCount": self.request_count,
            "averageLatencyMs": self.average_latency_ms,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "perSlot": dict(self.per_slot),
        }


class UsageTracker:
    """注册为 Dispatcher 监听器后累计每个会话的请求数、延迟与 token。"""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionUsage] = {}

    def __call__(self, metrics: RelayMetrics) -> None:
        with self._lock:
            usage = self._sessions.setdefault(metrics.session_id, SessionUsage())
            usage.request_count += 1
            usage.total_latency_ms += metrics.latency_ms
            usage.prompt_tokens += metrics.prompt_tokens or 0
            usage.completion_tokens += metrics.completion_tokens or 0
            usage.total_tokens += metrics.total_tokens or 0
            usage.per_slot[metrics.model_type] = usage.per_slot.get(metrics.model_type, 0) + 1

    def for_session(self, session_id: str) -> Optional[SessionUsage]:
        with self._lock:
            return self._sessions.get(session_id)
