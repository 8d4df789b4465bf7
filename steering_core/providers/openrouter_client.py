"""OpenRouter Provider 适配器。

OpenRouter 聚合了多家厂商，模型 ID 形如 "openai/gpt-4o"，
请求与响应均为 OpenAI 兼容格式。
"""

from steering_core.providers.openai_client import OpenAICompatibleClient


class OpenRouterClient(OpenAICompatibleClient):
    name = "openrouter"
    vendor = "OpenRouter"
    default_url = "https://openrouter.ai/api/v1/chat/completions"
    url_setting = "openrouter_base_url"
