"""Provider 抽象接口。

编排层不直接依赖具体厂商的 HTTP 协议，而是依赖一个统一的 ProviderClient
（见 providers.client），它由一个很小的“厂商策略”对象参数化：

- 每个厂商实现一个 ProviderStrategy（如 GeminiStrategy、PerplexityStrategy）。
- 策略只负责：端点 URL、鉴权头、把会话转成厂商请求 JSON、从响应 JSON 中
  取出回复文本与引用。
- 重试、退避、超时、错误分类都在 ProviderClient 里统一实现，不按厂商复制。
"""

from typing import Any, Dict, List, Protocol, Tuple

from card_chat.domain.models import ChatMessage, ProviderId


class ProviderStrategy(Protocol):
    """厂商策略协议。

    实现者需要提供：
    - name: 厂商名称（gemini / perplexity），用于日志。
    - provider_id: primary / secondary。
    - is_configured: 是否配置了 API 密钥；未配置的 Provider 永远不会被调用。
    - endpoint() / headers(): 请求地址与鉴权头。
    - build_payload(messages): 已注入领域限定语的会话 -> 厂商请求 JSON。
    - parse_response(data): 厂商响应 JSON -> (回复文本, 引用列表)。
      数据结构不符合预期时抛出 KeyError/TypeError/ValueError。
    """

    name: str
    provider_id: ProviderId

    @property
    def is_configured(self) -> bool:
        ...

    def endpoint(self) -> str:
        ...

    def headers(self) -> Dict[str, str]:
        ...

    def build_payload(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        ...

    def parse_response(self, data: Dict[str, Any]) -> Tuple[str, List[str]]:
        ...
