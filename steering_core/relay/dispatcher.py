"""中继调度核心模块。

给定 (RelayRequest, Configuration)：校验会话与配置、选择模型槽位、
解析适配器、调用厂商，成功后写入一条消息并返回统一结果。
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from steering_core.config.settings import settings
from steering_core.domain.exceptions import (
    NoActiveConfigurationError,
    PersistenceError,
    ProviderError,
    SessionNotFoundError,
    SessionPausedError,
    UnsupportedProviderError,
    ValidationError,
)
from steering_core.domain.models import SLOTS, ProviderReply, RelayMetrics, RelayRequest, RelayResult
from steering_core.domain.session import Configuration, Message, SessionStore
from steering_core.infrastructure.logging.logger import logger
from steering_core.providers import create_provider
from steering_core.providers.base import ProviderAdapter
from steering_core.providers.registry import is_supported

MetricsListener = Callable[[RelayMetrics], None]


class RelayDispatcher:
    def __init__(
        self,
        store: SessionStore,
        provider_factory: Callable[[str], Optional[ProviderAdapter]] = create_provider,
        persist_retries: Optional[int] = None,
    ):
        self._store = store
        self._provider_factory = provider_factory
        self._persist_retries = settings.persist_retries if persist_retries is None else persist_retries
        self._listeners: List[MetricsListener] = []

    def add_listener(self, listener: MetricsListener) -> None:
        """注册一次中继完成后的用量回调。"""
        self._listeners.append(listener)

    def check_ready(self, request: RelayRequest, config: Configuration) -> ProviderAdapter:
        """执行所有不需要网络的校验，返回可用的适配器。

        失败时抛出 NoActiveConfigurationError / SessionNotFoundError /
        SessionPausedError / ValidationError / UnsupportedProviderError。
        """

        if not config.is_active:
            raise NoActiveConfigurationError(configuration_id=config.id)
        session = self._store.get_session(request.session_id)
        if session is None or session.owner_id != config.owner_id:
            raise SessionNotFoundError(request.session_id)
        if session.is_paused:
            raise SessionPausedError(request.session_id)
        if request.model_type not in SLOTS:
            raise ValidationError(
                code="INVALID_MODEL_TYPE",
                message=f"modelType must be 'A' or 'B', got {request.model_type!r}",
            )
        model = config.model_for(request.model_type)
        adapter = self._provider_factory(config.provider)
        if adapter is None:
            raise UnsupportedProviderError(config.provider)
        if not is_supported(config.provider, model):
            raise UnsupportedProviderError(config.provider, model)
        return adapter

    async def relay(self, request: RelayRequest, config: Configuration) -> RelayResult:
        """执行一次中继。

        Returns:
            RelayResult(content, model_used)

        Raises:
            ProviderError: 厂商调用失败，原样上抛（extra 中补充会话上下文）。
            PersistenceError: 厂商已返回但消息写入失败，extra["content"] 保留回答。
        """

        adapter = self.check_ready(request, config)
        model = config.model_for(request.model_type)
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "session_id": request.session_id,
            "model_type": request.model_type,
            "provider": config.provider,
            "model": model,
        }
        self._log(logging.INFO, "Calling provider", log_ctx, message_count=len(request.messages))

        # 以发起时刻作为消息时间，同一槽位的消息按调用顺序排列
        dispatched_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        try:
            reply: ProviderReply = await adapter.complete(config.api_key, model, request.messages)
        except ProviderError as e:
            e.extra.update(session_id=request.session_id, model_type=request.model_type, model=model)
            self._log(logging.WARNING, "Provider call failed", log_ctx, error=e.message)
            raise
        latency_ms = (time.perf_counter() - start) * 1000

        message = Message(
            id=f"m-{uuid4().hex}",
            session_id=request.session_id,
            model_type=request.model_type,
            content=reply.text,
            created_at=dispatched_at,
        )
        await asyncio.to_thread(self._persist, message, log_ctx)

        metrics = RelayMetrics(
            session_id=request.session_id,
            model_type=request.model_type,
            provider=config.provider,
            model=model,
            latency_ms=round(latency_ms, 2),
        )
        if reply.usage:
            metrics.prompt_tokens = reply.usage.prompt_tokens
            metrics.completion_tokens = reply.usage.completion_tokens
            metrics.total_tokens = reply.usage.total_tokens
        self._log(
            logging.INFO,
            "Relay completed",
            log_ctx,
            message_id=message.id,
            latency_ms=metrics.latency_ms,
            total_tokens=metrics.total_tokens,
        )
        for listener in self._listeners:
            listener(metrics)
        return RelayResult(content=reply.text, model_used=model)

    def _persist(self, message: Message, log_ctx: Dict[str, Any]) -> None:
        """写入消息；失败时用同一 ID 重试，重复 ID 由存储层去重。"""

        attempts = 1 + self._persist_retries
        last_error: Optional[PersistenceError] = None
        for attempt in range(1, attempts + 1):
            try:
                self._store.add_message(message)
                return
            except PersistenceError as e:
                last_error = e
                self._log(
                    logging.WARNING,
                    "Message write failed",
                    log_ctx,
                    attempt=attempt,
                    message_id=message.id,
                    error=e.message,
                )
        raise PersistenceError(
            f"Provider responded but the message could not be stored: {last_error.message}",
            session_id=message.session_id,
            model_type=message.model_type,
            message_id=message.id,
            content=message.content,
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
