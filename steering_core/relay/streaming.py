"""流式展示层。

把一次完整的回答重新切分为增量片段，让客户端可以逐段渲染，
而不要求 Provider 本身支持流式。每个模型槽位的一次交换对应一个状态机：

    Idle -> Typing -> Streaming -> Complete
                 \\-> Failed（错误事件，携带结构化错误）

切分只是展示手段：segment_text / stream_fragments 与内容来源解耦，
将来真正的流式适配器可以直接把增量喂给同一套事件协议。
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, Literal, Optional, Union

from steering_core.config.settings import settings
from steering_core.domain.exceptions import BusinessError
from steering_core.domain.models import ModelType, RelayRequest
from steering_core.domain.session import Configuration
from steering_core.relay.dispatcher import RelayDispatcher


class StreamState(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class StreamEvent:
    """推给客户端的生命周期事件。

    kind:
        - "typing": 请求已发出，模型正在生成，尚无内容。
        - "chunk": 一段增量内容。
        - "complete": 终止标记，携带完整内容与实际使用的模型。
        - "error": 失败终止，携带 {error, code}。
    """

    kind: Literal["typing", "chunk", "complete", "error"]
    session_id: str
    model_type: ModelType
    chunk: Optional[str] = None
    content: Optional[str] = None
    model: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": self.kind,
            "sessionId": self.session_id,
            "modelType": self.model_type,
            "isComplete": self.kind in ("complete", "error"),
        }
        if self.chunk is not None:
            payload["chunk"] = self.chunk
        if self.content is not None:
            payload["content"] = self.content
        if self.model is not None:
            payload["model"] = self.model
        if self.error is not None:
            payload["error"] = self.error
        return payload


def segment_text(text: str, size: int) -> Iterator[str]:
    """按固定字符数惰性切分文本。"""

    if size < 1:
        raise ValueError("size must be >= 1")
    for start in range(0, len(text), size):
        yield text[start:start + size]


async def stream_fragments(
    fragments: Union[Iterable[str], AsyncIterable[str]],
    delay: float = 0.0,
) -> AsyncIterator[str]:
    """以固定节奏逐个产出片段，最后一个片段之后不再等待。"""

    if isinstance(fragments, AsyncIterable):
        async for fragment in fragments:
            yield fragment
        return
    first = True
    for fragment in fragments:
        if not first and delay:
            await asyncio.sleep(delay)
        first = False
        yield fragment


class ExchangeStream:
    """单个槽位一次交换的状态机，事件序列只能消费一次。"""

    def __init__(
        self,
        dispatcher: RelayDispatcher,
        request: RelayRequest,
        config: Configuration,
        chunk_size: int,
        chunk_delay: float,
    ):
        self._dispatcher = dispatcher
        self._request = request
        self._config = config
        self._chunk_size = chunk_size
        self._chunk_delay = chunk_delay
        self._consumed = False
        self.state = StreamState.IDLE

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("stream already consumed")
        self._consumed = True
        req = self._request

        try:
            self._dispatcher.check_ready(req, self._config)
        except BusinessError as e:
            yield self._fail(e)
            return

        self.state = StreamState.TYPING
        yield StreamEvent(kind="typing", session_id=req.session_id, model_type=req.model_type)

        try:
            result = await self._dispatcher.relay(req, self._config)
        except BusinessError as e:
            yield self._fail(e)
            return

        self.state = StreamState.STREAMING
        pieces = stream_fragments(segment_text(result.content, self._chunk_size), self._chunk_delay)
        async for piece in pieces:
            yield StreamEvent(kind="chunk", session_id=req.session_id, model_type=req.model_type, chunk=piece)

        self.state = StreamState.COMPLETE
        yield StreamEvent(
            kind="complete",
            session_id=req.session_id,
            model_type=req.model_type,
            content=result.content,
            model=result.model_used,
        )

    def _fail(self, error: BusinessError) -> StreamEvent:
        self.state = StreamState.FAILED
        return StreamEvent(
            kind="error",
            session_id=self._request.session_id,
            model_type=self._request.model_type,
            error={"error": error.message, "code": error.code},
        )


class StreamPresenter:
    def __init__(
        self,
        dispatcher: RelayDispatcher,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ):
        self._dispatcher = dispatcher
        self._chunk_size = chunk_size or settings.stream_chunk_size
        self._chunk_delay = settings.stream_chunk_delay if chunk_delay is None else chunk_delay

    def stream(self, request: RelayRequest, config: Configuration) -> ExchangeStream:
        return ExchangeStream(self._dispatcher, request, config, self._chunk_size, self._chunk_delay)


_DONE = object()


async def merge_streams(*streams: AsyncIterable[StreamEvent]) -> AsyncIterator[StreamEvent]:
    """并发消费多个槽位的事件流，按产生顺序交错输出。

    各槽位互不阻塞；任一流抛出的非业务异常会在输出端重新抛出。
    """

    queue: asyncio.Queue = asyncio.Queue()

    async def pump(stream: AsyncIterable[StreamEvent]) -> None:
        try:
            async for event in stream:
                await queue.put(event)
        except Exception as exc:
            await queue.put(exc)
        finally:
            await queue.put(_DONE)

    tasks = [asyncio.create_task(pump(s)) for s in streams]
    remaining = len(tasks)
    try:
        while remaining:
            item = await queue.get()
            if item is _DONE:
                remaining -= 1
                continue
            if isinstance(item, Exception):
                raise item
            yield item
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
