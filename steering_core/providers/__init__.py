"""LLM Provider 集成层。

该包下的模块负责：
- 定义适配器抽象接口与公共 HTTP 实现 (base)。
- 维护 Provider 与可选模型目录 (registry)。
- 提供各厂商的具体实现 (openai_client、anthropic_client、google_client ...)。

新增厂商只需新增一个适配器并登记到 ADAPTERS，Dispatcher 不需要修改。
"""

from typing import Dict, Optional, Type

from steering_core.config.settings import settings
from steering_core.providers.base import HttpProviderAdapter, ProviderAdapter
from steering_core.providers.anthropic_client import AnthropicClient
from steering_core.providers.deepseek_client import DeepSeekClient
from steering_core.providers.google_client import GoogleClient
from steering_core.providers.openai_client import OpenAIClient
from steering_core.providers.openrouter_client import OpenRouterClient
from steering_core.providers.qwen_client import QwenClient
from steering_core.providers.xai_client import XaiClient


ADAPTERS: Dict[str, Type[HttpProviderAdapter]] = {
    cls.name: cls
    for cls in (
        OpenAIClient,
        AnthropicClient,
        XaiClient,
        GoogleClient,
        DeepSeekClient,
        QwenClient,
        OpenRouterClient,
    )
}


def create_provider(name: str, cfg=None) -> Optional[ProviderAdapter]:
    """根据名称创建适配器实例；未知 Provider 返回 None，由调用方决定如何报错。"""

    cls = ADAPTERS.get((name or "").lower())
    if cls is None:
        return None
    return cls(cfg or settings)
