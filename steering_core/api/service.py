"""对外服务模块。

SteeringService 把 SessionStore、RelayDispatcher 与流式展示层组合起来，
为 HTTP 路由提供按 owner 隔离的操作。所有方法失败时抛出 domain.exceptions 中的异常。
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from steering_core.config.settings import settings
from steering_core.domain.exceptions import (
    BusinessError,
    NoActiveConfigurationError,
    PersistenceError,
    SessionNotFoundError,
    SessionPausedError,
    UnsupportedProviderError,
    ValidationError,
)
from steering_core.domain.models import SLOTS, ChatMessage, RelayRequest, RelayResult
from steering_core.domain.session import Configuration, Message, Session, SessionStore
from steering_core.infrastructure.logging.logger import logger
from steering_core.infrastructure.storage.json_store import JsonSessionStore
from steering_core.providers.registry import get_provider_descriptor
from steering_core.relay.dispatcher import RelayDispatcher
from steering_core.relay.metrics import SessionUsage, UsageTracker
from steering_core.relay.streaming import ExchangeStream, StreamPresenter
from steering_core.relay.transcript import export_session, parse_transcript


class SteeringService:
    def __init__(
        self,
        store: SessionStore,
        dispatcher: Optional[RelayDispatcher] = None,
        presenter: Optional[StreamPresenter] = None,
    ):
        self._store = store
        self._dispatcher = dispatcher or RelayDispatcher(store)
        self._presenter = presenter or StreamPresenter(self._dispatcher)
        self._usage = UsageTracker()
        self._dispatcher.add_listener(self._usage)

    # ---- 会话生命周期 ----

    def start_session(
        self,
        owner_id: str,
        provider: str,
        api_key: str,
        model_a: str,
        model_b: str,
    ) -> Tuple[Session, Configuration]:
        """停用 owner 旧配置，创建新的激活配置并绑定一个新会话。"""

        descriptor = get_provider_descriptor(provider)
        if descriptor is None:
            raise UnsupportedProviderError(provider)
        for model in (model_a, model_b):
            if not descriptor.has_model(model):
                raise UnsupportedProviderError(provider, model)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="apiKey is required")
        if not api_key.isascii():
            # key 会进入 HTTP 头，只能是 ASCII
            raise ValidationError(code="INVALID_API_KEY", message="apiKey contains non-ASCII characters")

        try:
            config = self._store.activate_configuration(owner_id, descriptor.id, api_key, model_a, model_b)
            session = self._store.create_session(owner_id, config.id)
        except PersistenceError as e:
            logger.error("Start session failed", extra={"extra": {"owner_id": owner_id, "error": e.message}})
            raise PersistenceError(e.message, http_status=400)
        logger.info(
            "Session started",
            extra={"extra": {"owner_id": owner_id, "session_id": session.id, "provider": config.provider}},
        )
        return session, config

    def active_configuration(self, owner_id: str) -> Configuration:
        config = self._store.get_active_configuration(owner_id)
        if config is None:
            raise NoActiveConfigurationError(owner_id=owner_id)
        return config

    def get_session(self, owner_id: str, session_id: str) -> Session:
        session = self._store.get_session(session_id)
        if session is None or session.owner_id != owner_id:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self, owner_id: str, query: Optional[str] = None) -> List[Session]:
        return self._store.list_sessions(owner_id, query)

    def delete_session(self, owner_id: str, session_id: str) -> None:
        """永久删除会话及其全部消息。"""
        self.get_session(owner_id, session_id)
        self._store.delete_session(session_id)
        logger.info("Session deleted", extra={"extra": {"owner_id": owner_id, "session_id": session_id}})

    def list_messages(self, owner_id: str, session_id: str) -> List[Message]:
        self.get_session(owner_id, session_id)
        return self._store.list_messages(session_id)

    def pause(self, owner_id: str, session_id: str) -> Session:
        self.get_session(owner_id, session_id)
        return self._store.set_paused(session_id, True)

    def resume(self, owner_id: str, session_id: str) -> Session:
        self.get_session(owner_id, session_id)
        return self._store.set_paused(session_id, False)

    def set_turn_count(self, owner_id: str, session_id: str, turn_count: int) -> Session:
        if turn_count < 0:
            raise ValidationError(code="INVALID_TURN_COUNT", message="turnCount must be >= 0")
        self.get_session(owner_id, session_id)
        return self._store.set_turn_count(session_id, turn_count)

    def usage(self, owner_id: str, session_id: str) -> SessionUsage:
        self.get_session(owner_id, session_id)
        return self._usage.for_session(session_id) or SessionUsage()

    # ---- 中继 ----

    async def relay_chat(
        self,
        owner_id: str,
        session_id: str,
        messages: Sequence[ChatMessage],
        model_type: str,
    ) -> RelayResult:
        config = self.active_configuration(owner_id)
        request = RelayRequest(session_id=session_id, model_type=model_type, messages=list(messages))
        return await self._dispatcher.relay(request, config)

    def stream_chat(
        self,
        owner_id: str,
        session_id: str,
        messages: Sequence[ChatMessage],
        model_type: str,
    ) -> ExchangeStream:
        config = self.active_configuration(owner_id)
        request = RelayRequest(session_id=session_id, model_type=model_type, messages=list(messages))
        return self._presenter.stream(request, config)

    async def exchange(
        self,
        owner_id: str,
        session_id: str,
        message: str,
        history_a: Sequence[ChatMessage] = (),
        history_b: Sequence[ChatMessage] = (),
    ) -> Dict[str, Any]:
        """一次完整交换：记录用户消息，A/B 并发中继，两边都成功时 turn_count 加一。"""

        config = self.active_configuration(owner_id)
        session = self.get_session(owner_id, session_id)
        if session.is_paused:
            raise SessionPausedError(session_id)
        if not message.strip():
            raise ValidationError(code="EMPTY_MESSAGE", message="message must not be empty")

        await asyncio.to_thread(self._append, session_id, "user", message)
        user_turn = ChatMessage(role="user", content=message)
        histories = {"A": list(history_a), "B": list(history_b)}
        requests = [
            RelayRequest(session_id=session_id, model_type=slot, messages=histories[slot] + [user_turn])
            for slot in SLOTS
        ]
        outcomes = await asyncio.gather(
            *(self._dispatcher.relay(r, config) for r in requests),
            return_exceptions=True,
        )

        result: Dict[str, Any] = {}
        all_ok = True
        for slot, outcome in zip(SLOTS, outcomes):
            if isinstance(outcome, RelayResult):
                result[slot] = {"response": outcome.content, "model": outcome.model_used}
            elif isinstance(outcome, BusinessError):
                all_ok = False
                result[slot] = {"error": outcome.message, "code": outcome.code}
            else:
                raise outcome
        if all_ok:
            session = await asyncio.to_thread(self._store.increment_turn_count, session_id)
        result["turnCount"] = session.turn_count
        return result

    # ---- 引导备注与记录 ----

    def inject_note(self, owner_id: str, session_id: str, note: str) -> Message:
        """记录一条引导备注（system 消息），不会发给模型。"""

        if not note.strip():
            raise ValidationError(code="EMPTY_NOTE", message="note must not be empty")
        self.get_session(owner_id, session_id)
        return self._append(session_id, "system", note)

    def export(
        self,
        owner_id: str,
        session_id: str,
        fmt: str = "json",
        model_filter: str = "all",
        include_metadata: bool = True,
        include_timestamps: bool = True,
    ) -> str:
        session = self.get_session(owner_id, session_id)
        messages = self._store.list_messages(session_id)
        return export_session(session, messages, fmt, model_filter, include_metadata, include_timestamps)

    def import_transcript(self, owner_id: str, session_id: str, raw: Any) -> List[Message]:
        """导入 JSON 记录；已存在的消息 ID 会被跳过。"""

        self.get_session(owner_id, session_id)
        messages = parse_transcript(raw, session_id)
        for message in messages:
            self._store.add_message(message)
        return messages

    def _append(self, session_id: str, model_type: str, content: str) -> Message:
        message = Message(
            id=f"m-{uuid4().hex}",
            session_id=session_id,
            model_type=model_type,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        self._store.add_message(message)
        return message


_service: Optional[SteeringService] = None


def get_default_service() -> SteeringService:
    """获取默认的服务实例（单例），使用配置中的存储目录。"""
    global _service
    if _service is None:
        _service = SteeringService(JsonSessionStore(root=settings.storage_root))
    return _service
