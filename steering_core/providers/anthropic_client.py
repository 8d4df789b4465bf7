"""Anthropic Provider 适配器。

与 OpenAI 系的差异：
- URL: https://api.anthropic.com/v1/messages
- 认证: x-api-key 头 + anthropic-version 头（不使用 Bearer）。
- system 消息不能出现在 messages 中，需合并到顶层 system 字段。
- 取值: content[0].text
"""

from typing import Any, Dict, List, Optional

from steering_core.domain.models import ChatMessage, ChatUsage
from steering_core.providers.base import HttpProviderAdapter, MAX_OUTPUT_TOKENS, TEMPERATURE

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(HttpProviderAdapter):
    name = "anthropic"
    vendor = "Anthropic"
    default_url = "https://api.anthropic.com/v1/messages"
    url_setting = "anthropic_base_url"

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _build_payload(self, model: str, messages: List[ChatMessage]) -> Dict[str, Any]:
        system_parts = [m.content for m in messages if m.role == "system" and m.content]
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": TEMPERATURE,
            "messages": [m.to_dict() for m in messages if m.role != "system"],
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        return payload

    def _extract_text(self, data: Dict[str, Any]) -> Any:
        return data["content"][0]["text"]

    def _extract_usage(self, data: Dict[str, Any]) -> Optional[ChatUsage]:
        usage_raw = data.get("usage") or {}
        if not usage_raw:
            return None
        prompt = usage_raw.get("input_tokens", 0)
        completion = usage_raw.get("output_tokens", 0)
        return ChatUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)
