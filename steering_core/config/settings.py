"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("STEERING_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- HTTP / Provider ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="单次厂商调用的超时时间（秒）")
    openai_base_url: Optional[str] = Field(default=None, description="覆盖 OpenAI 端点（代理/测试用）")
    anthropic_base_url: Optional[str] = Field(default=None, description="覆盖 Anthropic 端点")
    xai_base_url: Optional[str] = Field(default=None, description="覆盖 xAI 端点")
    google_base_url: Optional[str] = Field(default=None, description="覆盖 Google Gemini 端点")
    deepseek_base_url: Optional[str] = Field(default=None, description="覆盖 DeepSeek 端点")
    qwen_base_url: Optional[str] = Field(default=None, description="覆盖 DashScope/Qwen 端点")
    openrouter_base_url: Optional[str] = Field(default=None, description="覆盖 OpenRouter 端点")

    # ---- 存储 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    persist_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="厂商调用成功后消息写入失败时的额外重试次数（同一消息 ID）",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 流式展示 ----
    stream_chunk_size: int = Field(default=3, ge=1, description="每个流式片段的字符数")
    stream_chunk_delay: float = Field(default=0.03, ge=0.0, description="相邻片段之间的间隔（秒）")

    # ---- 认证 ----
    auth_tokens: Dict[str, str] = Field(
        default_factory=dict,
        description="Bearer token -> owner_id 映射",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STEERING_",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("auth_tokens")
    @classmethod
    def validate_tokens(cls, v: Dict[str, str]) -> Dict[str, str]:
        for token, owner in v.items():
            if not token or not owner:
                raise ValueError("auth token and owner id must be non-empty")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
