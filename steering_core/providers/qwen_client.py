"""Qwen（阿里云 DashScope）Provider 适配器。

DashScope 原生接口与 OpenAI 不同：
- 请求体为 {model, input: {messages}, parameters: {...}}。
- 设置 result_format="message" 后，回答位于 output.choices[0].message.content；
  旧格式只返回 output.text，这里做兼容。
- 错误信息位于顶层 message 字段。
"""

from typing import Any, Dict, List, Optional

from steering_core.domain.models import ChatMessage, ChatUsage
from steering_core.providers.base import HttpProviderAdapter, MAX_OUTPUT_TOKENS, TEMPERATURE


class QwenClient(HttpProviderAdapter):
    name = "qwen"
    vendor = "Qwen"
    default_url = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
    url_setting = "qwen_base_url"

    def _build_payload(self, model: str, messages: List[ChatMessage]) -> Dict[str, Any]:
        return {
            "model": model,
            "input": {"messages": [m.to_dict() for m in messages]},
            "parameters": {
                "max_tokens": MAX_OUTPUT_TOKENS,
                "temperature": TEMPERATURE,
                "result_format": "message",
            },
        }

    def _extract_text(self, data: Dict[str, Any]) -> Any:
        output = data["output"]
        choices = output.get("choices")
        if choices:
            return choices[0]["message"]["content"]
        return output["text"]

    def _extract_usage(self, data: Dict[str, Any]) -> Optional[ChatUsage]:
        usage_raw = data.get("usage") or {}
        if not usage_raw:
            return None
        prompt = usage_raw.get("input_tokens", 0)
        completion = usage_raw.get("output_tokens", 0)
        return ChatUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=usage_raw.get("total_tokens", prompt + completion),
        )

    def _vendor_message(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("message") or super()._vendor_message(data)
