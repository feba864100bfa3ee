"""Provider 与模型配置。

把每个厂商的“固定常量”集中在这里：默认 base_url、模型名、生成参数、
安全阈值。这些是配置常量，不会按请求计算。base_url 与模型名可以被
Settings 覆盖（gemini_base_url / perplexity_model 等）。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from card_chat.domain.models import ProviderId


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    provider_id: ProviderId
    base_url: str
    model: str
    generation: Dict[str, Any] = field(default_factory=dict)
    safety_settings: List[Dict[str, str]] = field(default_factory=list)


_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

# Gemini（Primary）
GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    provider_id="primary",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    model="gemini-1.5-pro",
    generation={
        "temperature": 0.2,
        "topP": 0.8,
        "topK": 40,
        "maxOutputTokens": 2048,
    },
    safety_settings=[
        {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
        for category in _SAFETY_CATEGORIES
    ],
)

# Perplexity（Secondary），chat/completions 风格
PERPLEXITY_CONFIG = ProviderConfig(
    name="perplexity",
    provider_id="secondary",
    base_url="https://api.perplexity.ai",
    model="sonar",
    generation={
        "max_tokens": 2048,
        "temperature": 0.7,
    },
)


PROVIDER_REGISTRY: Mapping[ProviderId, ProviderConfig] = {
    "primary": GEMINI_CONFIG,
    "secondary": PERPLEXITY_CONFIG,
}


def get_provider_config(key: str) -> ProviderConfig:
    """根据 provider id（primary/secondary）或厂商名获取配置，不区分大小写。"""

    key = key.lower()
    for provider_id, cfg in PROVIDER_REGISTRY.items():
        if key in (provider_id, cfg.name):
            return cfg
    raise KeyError(f"Unknown provider: {key!r}")
