"""Provider 适配器抽象。

上层 Dispatcher 不直接依赖具体厂商的 HTTP 细节，而是依赖 ProviderAdapter 协议：

- 每个厂商实现一个适配器（如 OpenAIClient、AnthropicClient）。
- 负责：把统一的 (model, messages) 转成厂商请求，并把响应 JSON 解析为纯文本。

HttpProviderAdapter 封装了所有厂商共用的部分：一次 HTTP 调用、超时、
错误分类与 ProviderError 包装。子类只需给出端点、认证、请求体与取值路径。
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from steering_core.config.settings import settings
from steering_core.domain.exceptions import ProviderError, ProviderTimeoutError
from steering_core.domain.models import ChatMessage, ChatUsage, ProviderReply

# 所有厂商共用的生成参数（适配器层常量，不对用户开放）
MAX_OUTPUT_TOKENS = 1000
TEMPERATURE = 0.7


class ProviderAdapter(Protocol):
    """Provider 适配器协议。

    - name: 注册表中的 Provider ID。
    - vendor: 厂商显示名，用于错误信息。
    - send: 执行一次非流式调用，返回回答文本。
    - complete: 同 send，但额外带回 token 用量。
    """

    name: str
    vendor: str

    async def send(self, api_key: str, model: str, messages: Sequence[ChatMessage]) -> str:
        ...

    async def complete(self, api_key: str, model: str, messages: Sequence[ChatMessage]) -> ProviderReply:
        ...


class HttpProviderAdapter:
    """基于 httpx 的适配器基类，每次调用只发一个请求，不做重试。"""

    name = ""
    vendor = ""
    default_url = ""
    # Settings 中覆盖端点的字段名，例如 "openai_base_url"
    url_setting = ""

    def __init__(self, cfg=None):
        self._settings = cfg or settings

    async def send(self, api_key: str, model: str, messages: Sequence[ChatMessage]) -> str:
        reply = await self.complete(api_key, model, messages)
        return reply.text

    async def complete(self, api_key: str, model: str, messages: Sequence[ChatMessage]) -> ProviderReply:
        """执行一次调用。

        步骤：
        1. 构造端点、认证头、查询参数与请求体。
        2. 发送请求，超时与网络错误统一包装为 ProviderError。
        3. 非 2xx 时优先使用厂商自己的错误信息。
        4. 按厂商的取值路径提取文本，缺失即视为失败。
        """

        timeout = self._settings.http_timeout
        try:
            async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
                resp = await client.post(
                    self._endpoint(model),
                    json=self._build_payload(model, list(messages)),
                    headers=self._headers(api_key),
                    params=self._params(api_key),
                )
        except httpx.TimeoutException:
            raise ProviderTimeoutError(self.vendor, timeout)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接被拒等
            raise ProviderError(self.vendor, self._error_text(str(e) or type(e).__name__))
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # 请求无法构造：非 ASCII 的 key、非法 URL 等
            raise ProviderError(self.vendor, self._error_text(f"invalid request: {e}"))

        data = self._decode(resp)
        if not 200 <= resp.status_code < 300:
            raise ProviderError(
                self.vendor,
                self._error_text(self._vendor_message(data)),
                upstream_status=resp.status_code,
            )
        try:
            text = self._extract_text(data)
        except (KeyError, IndexError, TypeError, AttributeError):
            text = None
        if not isinstance(text, str):
            raise ProviderError(self.vendor, self._error_text("response missing completion text"))
        return ProviderReply(text=text, usage=self._extract_usage(data))

    # ---- 子类覆盖点 ----

    def _endpoint(self, model: str) -> str:
        override = getattr(self._settings, self.url_setting, None) if self.url_setting else None
        return override or self.default_url

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _params(self, api_key: str) -> Optional[Dict[str, str]]:
        return None

    def _build_payload(self, model: str, messages: List[ChatMessage]) -> Dict[str, Any]:
        raise NotImplementedError

    def _extract_text(self, data: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def _extract_usage(self, data: Dict[str, Any]) -> Optional[ChatUsage]:
        return None

    def _vendor_message(self, data: Dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return error
        return None

    # ---- 辅助方法 ----

    def _error_text(self, detail: Optional[str]) -> str:
        return f"{self.vendor} API error: {detail or 'Unknown error'}"

    @staticmethod
    def _decode(resp: httpx.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
