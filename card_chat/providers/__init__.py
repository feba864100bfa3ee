"""LLM Provider 集成层。

该包下的模块负责：
- 定义厂商策略协议 (base)。
- 维护 Provider 常量配置 (registry)。
- 提供各厂商的策略实现 (gemini、perplexity)。
- 提供统一的重试/分类客户端 (client)。
"""

import time
from typing import Callable, Optional

import httpx

from card_chat.config.settings import settings
from card_chat.domain.models import ProviderId
from card_chat.infrastructure.rate_limit import RateLimiter
from card_chat.providers.base import ProviderStrategy
from card_chat.providers.client import ProviderClient
from card_chat.providers.gemini import GeminiStrategy
from card_chat.providers.perplexity import PerplexityStrategy
from card_chat.providers.registry import get_provider_config


def create_strategy(name: str, cfg=None) -> ProviderStrategy:
    """根据 provider id 或厂商名创建策略实例。"""

    cfg = cfg or settings
    provider_id = get_provider_config(name).provider_id
    if provider_id == "primary":
        return GeminiStrategy(cfg)
    return PerplexityStrategy(cfg)


def create_provider(
    name: str,
    cfg=None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProviderClient:
    """创建某个 Provider 的客户端，默认读取全局 settings。"""

    cfg = cfg or settings
    return ProviderClient(create_strategy(name, cfg), cfg, transport=transport, sleep=sleep)


def create_rate_limiter(name: str, cfg=None, clock: Callable[[], float] = time.time) -> RateLimiter:
    """按 Settings 中的窗口配置创建某个 Provider 的限流器。"""

    cfg = cfg or settings
    provider_cfg = get_provider_config(name)
    return RateLimiter(
        name=provider_cfg.name,
        window_duration_ms=getattr(cfg, f"{provider_cfg.name}_rate_window_ms"),
        max_requests_per_window=getattr(cfg, f"{provider_cfg.name}_rate_max_requests"),
        clock=clock,
    )


__all__ = [
    "ProviderClient",
    "ProviderId",
    "ProviderStrategy",
    "GeminiStrategy",
    "PerplexityStrategy",
    "create_strategy",
    "create_provider",
    "create_rate_limiter",
]
