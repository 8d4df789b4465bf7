"""Provider 与模型目录。

静态目录，进程启动时加载、之后不可变：

- 供 Dispatcher 在发起网络调用之前校验 (provider, model) 组合是否合法。
- 供前端填充 Provider / 模型下拉框（GET /providers）。
"""

from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ModelDescriptor:
    """单个可选模型。"""

    id: str
    display_name: str


@dataclass(frozen=True)
class ProviderDescriptor:
    """某个 Provider 及其可选模型。"""

    id: str
    display_name: str
    models: Tuple[ModelDescriptor, ...]

    def has_model(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.models)


def _models(*pairs: Tuple[str, str]) -> Tuple[ModelDescriptor, ...]:
    return tuple(ModelDescriptor(id=i, display_name=n) for i, n in pairs)


OPENAI = ProviderDescriptor(
    id="openai",
    display_name="OpenAI",
    models=_models(
        ("gpt-4.1-2025-04-14", "GPT-4.1 (Latest)"),
        ("o3-2025-04-16", "o3 (Reasoning)"),
        ("o4-mini-2025-04-16", "o4 Mini (Fast Reasoning)"),
        ("gpt-4.1-mini-2025-04-14", "GPT-4.1 Mini"),
        ("gpt-4o", "GPT-4o"),
        ("gpt-4o-mini", "GPT-4o Mini"),
        ("gpt-3.5-turbo", "GPT-3.5 Turbo"),
    ),
)

ANTHROPIC = ProviderDescriptor(
    id="anthropic",
    display_name="Anthropic",
    models=_models(
        ("claude-opus-4-20250514", "Claude Opus 4 (Latest)"),
        ("claude-sonnet-4-20250514", "Claude Sonnet 4"),
        ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku (Fast)"),
        ("claude-3-7-sonnet-20250219", "Claude 3.7 Sonnet"),
        ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet"),
        ("claude-3-opus-20240229", "Claude 3 Opus"),
        ("claude-3-haiku-20240307", "Claude 3 Haiku"),
    ),
)

XAI = ProviderDescriptor(
    id="xai",
    display_name="xAI",
    models=_models(
        ("grok-beta", "Grok Beta"),
        ("grok-2", "Grok 2"),
    ),
)

GOOGLE = ProviderDescriptor(
    id="google",
    display_name="Google (Gemini)",
    models=_models(
        ("gemini-2.0-flash-exp", "Gemini 2.0 Flash (Experimental)"),
        ("gemini-1.5-pro-002", "Gemini 1.5 Pro (Latest)"),
        ("gemini-1.5-flash-002", "Gemini 1.5 Flash (Latest)"),
        ("gemini-1.5-pro", "Gemini 1.5 Pro"),
        ("gemini-1.5-flash", "Gemini 1.5 Flash"),
    ),
)

DEEPSEEK = ProviderDescriptor(
    id="deepseek",
    display_name="DeepSeek",
    models=_models(
        ("deepseek-r1", "DeepSeek R1 (Reasoning)"),
        ("deepseek-v3", "DeepSeek V3"),
        ("deepseek-chat", "DeepSeek Chat"),
        ("deepseek-coder", "DeepSeek Coder"),
    ),
)

QWEN = ProviderDescriptor(
    id="qwen",
    display_name="Qwen",
    models=_models(
        ("qwen3-coder-32b", "Qwen 3 Coder 32B"),
        ("qwen2.5-coder-32b", "Qwen 2.5 Coder 32B"),
        ("qwen-plus", "Qwen Plus"),
        ("qwen-turbo", "Qwen Turbo"),
        ("qwen-max", "Qwen Max"),
    ),
)

OPENROUTER = ProviderDescriptor(
    id="openrouter",
    display_name="OpenRouter",
    models=_models(
        # 免费模型
        ("qwen/qwen-3-coder-32b-instruct:free", "Qwen 3 Coder 32B (FREE)"),
        ("moonshot/kimi-k2-large", "Kimi K2 Large (FREE)"),
        ("deepseek/deepseek-r1:free", "DeepSeek R1 (FREE)"),
        ("google/gemini-2.0-flash-exp:free", "Gemini 2.0 Flash (FREE)"),
        ("meta-llama/llama-3.3-70b-instruct:free", "Llama 3.3 70B (FREE)"),
        ("qwen/qwen-2.5-coder-32b-instruct:free", "Qwen 2.5 Coder 32B (FREE)"),
        ("huggingfaceh4/zephyr-7b-beta:free", "Zephyr 7B Beta (FREE)"),
        # 付费模型
        ("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet"),
        ("openai/gpt-4o", "GPT-4o"),
        ("openai/o1-preview", "OpenAI o1 Preview"),
        ("google/gemini-pro-1.5", "Gemini Pro 1.5"),
        ("meta-llama/llama-3.1-405b-instruct", "Llama 3.1 405B"),
    ),
)


PROVIDER_REGISTRY: Mapping[str, ProviderDescriptor] = {
    p.id: p for p in (OPENAI, ANTHROPIC, XAI, GOOGLE, DEEPSEEK, QWEN, OPENROUTER)
}


def list_providers() -> List[ProviderDescriptor]:
    """按固定顺序返回全部 Provider。"""

    return list(PROVIDER_REGISTRY.values())


def get_provider_descriptor(name: str) -> Optional[ProviderDescriptor]:
    """根据名称获取 ProviderDescriptor，名称不区分大小写；未知返回 None。"""

    return PROVIDER_REGISTRY.get((name or "").lower())


def is_supported(provider: str, model: str) -> bool:
    descriptor = get_provider_descriptor(provider)
    return descriptor is not None and descriptor.has_model(model)
