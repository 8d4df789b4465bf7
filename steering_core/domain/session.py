from dataclasses import dataclass
from typing import Optional, List, Protocol
from datetime import datetime
from .models import ModelType


@dataclass
class Configuration:
    id: str
    owner_id: str
    provider: str
    api_key: str
    model_a: str
    model_b: str
    is_active: bool
    created_at: datetime

    def model_for(self, model_type: ModelType) -> str:
        return self.model_a if model_type == "A" else self.model_b


@dataclass
class Session:
    id: str
    owner_id: str
    configuration_id: str
    title: str
    turn_count: int
    is_paused: bool
    created_at: datetime


@dataclass(frozen=True)
class Message:
    id: str
    session_id: str
    model_type: ModelType
    content: str
    created_at: datetime


class SessionStore(Protocol):
    def activate_configuration(
        self,
        owner_id: str,
        provider: str,
        api_key: str,
        model_a: str,
        model_b: str,
    ) -> Configuration:
        """停用 owner 现有的全部配置并插入一条新的激活配置（原子操作）。"""
        ...

    def get_active_configuration(self, owner_id: str) -> Optional[Configuration]:
        ...

    def list_configurations(self, owner_id: str) -> List[Configuration]:
        ...

    def create_session(self, owner_id: str, configuration_id: str, title: Optional[str] = None) -> Session:
        ...

    def get_session(self, session_id: str) -> Optional[Session]:
        ...

    def list_sessions(self, owner_id: str, query: Optional[str] = None) -> List[Session]:
        """query 非空时按标题或 ID 做不区分大小写的包含匹配。"""
        ...

    def delete_session(self, session_id: str) -> None:
        ...

    def set_paused(self, session_id: str, paused: bool) -> Session:
        ...

    def set_turn_count(self, session_id: str, turn_count: int) -> Session:
        ...

    def increment_turn_count(self, session_id: str) -> Session:
        ...

    def add_message(self, message: Message) -> None:
        """追加消息；同一 ID 重复写入视为已写入。"""
        ...

    def list_messages(self, session_id: str) -> List[Message]:
        ...
