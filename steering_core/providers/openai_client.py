"""OpenAI 及其兼容接口的 Provider 适配器。

接口风格均为 chat/completions：
- URL: https://api.openai.com/v1/chat/completions
- 认证: Authorization: Bearer <api_key>
- 取值: choices[0].message.content

xAI、DeepSeek、OpenRouter 与此协议一致，只是端点不同，见各自模块。
"""

from typing import Any, Dict, List, Optional

from steering_core.domain.models import ChatMessage, ChatUsage
from steering_core.providers.base import HttpProviderAdapter, MAX_OUTPUT_TOKENS, TEMPERATURE


class OpenAICompatibleClient(HttpProviderAdapter):
    """chat/completions 协议的公共实现。"""

    def _build_payload(self, model: str, messages: List[ChatMessage]) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": TEMPERATURE,
        }

    def _extract_text(self, data: Dict[str, Any]) -> Any:
        return data["choices"][0]["message"]["content"]

    def _extract_usage(self, data: Dict[str, Any]) -> Optional[ChatUsage]:
        usage_raw = data.get("usage") or {}
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )


class OpenAIClient(OpenAICompatibleClient):
    name = "openai"
    vendor = "OpenAI"
    default_url = "https://api.openai.com/v1/chat/completions"
    url_setting = "openai_base_url"
