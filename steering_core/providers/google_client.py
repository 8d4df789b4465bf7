"""Google Gemini Provider 适配器。

- URL: {base}/{model}:generateContent，API Key 通过查询参数 ?key= 传递。
- 角色: Gemini 使用 "model" 表示助手；system 消息放入 systemInstruction。
- 取值: candidates[0].content.parts[0].text
"""

from typing import Any, Dict, List, Optional

from steering_core.domain.models import ChatMessage, ChatUsage
from steering_core.providers.base import HttpProviderAdapter, MAX_OUTPUT_TOKENS, TEMPERATURE

ROLE_MAP = {"user": "user", "assistant": "model"}


class GoogleClient(HttpProviderAdapter):
    name = "google"
    vendor = "Google"
    default_url = "https://generativelanguage.googleapis.com/v1beta/models"
    url_setting = "google_base_url"

    def _endpoint(self, model: str) -> str:
        base = super()._endpoint(model).rstrip("/")
        return f"{base}/{model}:generateContent"

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _params(self, api_key: str) -> Optional[Dict[str, str]]:
        return {"key": api_key}

    def _build_payload(self, model: str, messages: List[ChatMessage]) -> Dict[str, Any]:
        contents = [
            {"role": ROLE_MAP.get(m.role, "user"), "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "temperature": TEMPERATURE,
            },
        }
        system_parts = [{"text": m.content} for m in messages if m.role == "system" and m.content]
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    def _extract_text(self, data: Dict[str, Any]) -> Any:
        return data["candidates"][0]["content"]["parts"][0]["text"]

    def _extract_usage(self, data: Dict[str, Any]) -> Optional[ChatUsage]:
        usage_raw = data.get("usageMetadata") or {}
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("promptTokenCount", 0),
            completion_tokens=usage_raw.get("candidatesTokenCount", 0),
            total_tokens=usage_raw.get("totalTokenCount", 0),
        )
