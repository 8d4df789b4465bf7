"""xAI (Grok) Provider 适配器，OpenAI 兼容协议。"""

from steering_core.providers.openai_client import OpenAICompatibleClient


class XaiClient(OpenAICompatibleClient):
    name = "xai"
    vendor = "xAI"
    default_url = "https://api.x.ai/v1/chat/completions"
    url_setting = "xai_base_url"
