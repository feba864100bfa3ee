"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。

两个上游 Provider 的密钥都是可选的：未配置密钥的 Provider 视为“未启用”，
编排层会直接跳过它，而不是尝试调用后失败。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CARD_CHAT_CONFIG_FILE")
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

    # ---- Primary: Gemini ----
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    gemini_model: str = Field(default="gemini-1.5-pro", description="Gemini 模型名")

    # ---- Secondary: Perplexity ----
    perplexity_api_key: Optional[str] = Field(default=None, description="Perplexity API 密钥")
    perplexity_base_url: str = Field(
        default="https://api.perplexity.ai",
        description="Perplexity API 基础URL",
    )
    perplexity_model: str = Field(default="sonar", description="Perplexity 模型名")

    # ---- 调用与重试 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="单次 HTTP 调用超时时间（秒）")
    request_deadline: float = Field(
        default=60.0,
        gt=0,
        description="单个聊天请求的总时间预算（秒），包含重试与回退",
    )
    provider_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="瞬时错误时单个 Provider 的最大尝试次数（含首次）",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="重试退避基数（秒），第 n 次失败后等待 base * n",
    )

    # ---- 限流（固定窗口） ----
    gemini_rate_window_ms: int = Field(default=60_000, ge=1, description="Gemini 限流窗口（毫秒）")
    gemini_rate_max_requests: int = Field(default=10, ge=1, description="Gemini 每窗口最大请求数")
    perplexity_rate_window_ms: int = Field(default=60_000, ge=1, description="Perplexity 限流窗口（毫秒）")
    perplexity_rate_max_requests: int = Field(default=15, ge=1, description="Perplexity 每窗口最大请求数")

    # ---- 领域约束 ----
    domain_instruction: str = Field(
        default="For Indian credit cards only:",
        description="注入到每条 user 消息前的领域限定语",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("gemini_api_key", "perplexity_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        # 空字符串视为未配置
        if v is None or not v.strip():
            return None
        v = v.strip()
        if len(v) < 10:
            # 明显无效的密钥按未配置处理，不阻止服务启动
            warnings.warn("API key seems too short, provider disabled")
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @model_validator(mode="after")
    def validate_fallback_budget(self) -> "Settings":
        # Primary 最多使用一半预算，两个 Provider 都要能完成一次完整调用
        if self.request_deadline < 2 * self.http_timeout:
            raise ValueError("request_deadline must be at least 2 * http_timeout")
        return self

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
