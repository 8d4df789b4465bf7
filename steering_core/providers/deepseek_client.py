"""DeepSeek Provider 适配器，OpenAI 兼容协议。"""

from steering_core.providers.openai_client import OpenAICompatibleClient


class DeepSeekClient(OpenAICompatibleClient):
    name = "deepseek"
    vendor = "DeepSeek"
    default_url = "https://api.deepseek.com/v1/chat/completions"
    url_setting = "deepseek_base_url"
